from typing import List, Optional, Sequence
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.models import ActorKind, CaseComment
from app.utils.dates import utcnow

async def get_comment(db: AsyncSession, comment_id: UUID) -> Optional[CaseComment]:
    result = await db.execute(select(CaseComment).where(CaseComment.id == comment_id))
    return result.scalar_one_or_none()

async def get_case_comments(db: AsyncSession, case_id: UUID, include_internal: bool = False) -> List[CaseComment]:
    """
    Get the comment thread of a case, oldest first.
    """
    query = select(CaseComment).where(CaseComment.case_id == case_id)
    if not include_internal:
        query = query.where(CaseComment.is_internal.is_(False))
    result = await db.execute(query.order_by(CaseComment.created_at.asc(), CaseComment.id.asc()))
    return list(result.scalars().all())

async def mark_case_comments_read(
    db: AsyncSession,
    case_id: UUID,
    author_kinds: Sequence[ActorKind],
    include_internal: bool = False
) -> int:
    """
    Mark every unread comment on a case written by ``author_kinds`` as read.
    """
    conditions = [
        CaseComment.case_id == case_id,
        CaseComment.author_kind.in_(author_kinds),
        CaseComment.is_read.is_(False),
    ]
    if not include_internal:
        conditions.append(CaseComment.is_internal.is_(False))

    result = await db.execute(
        update(CaseComment)
        .where(*conditions)
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
