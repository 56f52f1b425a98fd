from typing import List, Optional, Tuple
from uuid import UUID
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.models import NotificationLog
from app.utils.dates import utcnow

async def get_notifications(
    db: AsyncSession,
    user_id: str,
    skip: int = 0,
    limit: int = 20,
    unread_only: bool = False
) -> Tuple[List[NotificationLog], int]:
    conditions = [NotificationLog.user_id == user_id, NotificationLog.channel == "web"]
    if unread_only:
        conditions.append(NotificationLog.is_read.is_(False))

    total = (await db.execute(select(func.count()).select_from(NotificationLog).where(*conditions))).scalar_one()
    result = await db.execute(
        select(NotificationLog).where(*conditions)
        .order_by(NotificationLog.created_at.desc())
        .offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total

async def count_unread(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(NotificationLog).where(
            NotificationLog.user_id == user_id,
            NotificationLog.channel == "web",
            NotificationLog.is_read.is_(False),
        )
    )
    return result.scalar_one()

async def get_notification(db: AsyncSession, notification_id: UUID, user_id: str) -> Optional[NotificationLog]:
    result = await db.execute(
        select(NotificationLog).where(
            NotificationLog.id == notification_id,
            NotificationLog.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()

async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(NotificationLog)
        .where(NotificationLog.user_id == user_id, NotificationLog.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
