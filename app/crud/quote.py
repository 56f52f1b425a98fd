from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.db.models import CaseQuote

logger = logging.getLogger(__name__)

async def get_quote(db: AsyncSession, quote_id: UUID) -> Optional[CaseQuote]:
    """
    Get a live quote by ID.
    """
    result = await db.execute(
        select(CaseQuote).where(CaseQuote.id == quote_id, CaseQuote.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()

async def get_quote_for_update(db: AsyncSession, quote_id: UUID) -> Optional[CaseQuote]:
    """
    Get a quote and lock its row until the current transaction ends.
    """
    result = await db.execute(
        select(CaseQuote)
        .where(CaseQuote.id == quote_id, CaseQuote.deleted_at.is_(None))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()

async def get_case_quotes(db: AsyncSession, case_id: UUID) -> List[CaseQuote]:
    """
    Get every quote issued for a case, newest first.
    """
    result = await db.execute(
        select(CaseQuote)
        .where(CaseQuote.case_id == case_id, CaseQuote.deleted_at.is_(None))
        .order_by(CaseQuote.created_at.desc())
    )
    return list(result.scalars().all())

async def count_quotes(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(CaseQuote).where(CaseQuote.deleted_at.is_(None)))
    return result.scalar_one()

async def count_open_quotes(db: AsyncSession) -> int:
    """
    Quotes sent to a client and still waiting for a decision.
    """
    result = await db.execute(
        select(func.count()).select_from(CaseQuote).where(
            CaseQuote.deleted_at.is_(None),
            CaseQuote.is_sent.is_(True),
            CaseQuote.is_accepted.is_(False),
            CaseQuote.is_rejected.is_(False),
        )
    )
    return result.scalar_one()

async def count_accepted_since(db: AsyncSession, since: datetime) -> int:
    result = await db.execute(
        select(func.count()).select_from(CaseQuote).where(
            CaseQuote.deleted_at.is_(None),
            CaseQuote.is_accepted.is_(True),
            CaseQuote.accepted_at >= since,
        )
    )
    return result.scalar_one()

async def get_average_total(db: AsyncSession) -> Any:
    result = await db.execute(
        select(func.avg(CaseQuote.total_amount)).where(CaseQuote.deleted_at.is_(None), CaseQuote.is_sent.is_(True))
    )
    return result.scalar_one()

async def count_by_creator(db: AsyncSession) -> Dict[UUID, int]:
    result = await db.execute(
        select(CaseQuote.created_by_id, func.count(CaseQuote.id))
        .where(CaseQuote.deleted_at.is_(None), CaseQuote.created_by_id.is_not(None))
        .group_by(CaseQuote.created_by_id)
    )
    return {creator_id: count for creator_id, count in result.all()}
