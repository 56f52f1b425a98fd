from typing import List, Optional, Dict, Any, Tuple
from uuid import UUID
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.db.models import DiscountCode, DiscountUsage

logger = logging.getLogger(__name__)

async def get_discount_code(db: AsyncSession, discount_code_id: UUID) -> Optional[DiscountCode]:
    """
    Get a live discount code by ID.
    """
    result = await db.execute(
        select(DiscountCode).where(DiscountCode.id == discount_code_id, DiscountCode.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()

async def get_discount_code_by_code(db: AsyncSession, code: str) -> Optional[DiscountCode]:
    """
    Get a live discount code by its code, ignoring case.
    """
    result = await db.execute(
        select(DiscountCode)
        .where(func.upper(DiscountCode.code) == code.strip().upper(), DiscountCode.deleted_at.is_(None))
        .limit(1)
    )
    return result.scalar_one_or_none()

async def get_discount_codes(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 20,
    filters: Optional[Dict[str, Any]] = None
) -> Tuple[List[DiscountCode], int]:
    """
    Get a page of discount codes, newest first, plus the total matching count.
    """
    conditions = [DiscountCode.deleted_at.is_(None)]
    if filters:
        if (is_active := filters.get("is_active")) is not None:
            conditions.append(DiscountCode.is_active.is_(is_active))
        if discount_type := filters.get("discount_type"):
            conditions.append(DiscountCode.discount_type == discount_type)
        if search := filters.get("search"):
            pattern = f"%{search}%"
            conditions.append(DiscountCode.code.ilike(pattern) | DiscountCode.description.ilike(pattern))

    total = (await db.execute(select(func.count()).select_from(DiscountCode).where(*conditions))).scalar_one()
    result = await db.execute(
        select(DiscountCode).where(*conditions)
        .order_by(DiscountCode.created_at.desc())
        .offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total

async def count_client_usages(db: AsyncSession, discount_code_id: UUID, client_profile_id: UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(DiscountUsage).where(
            DiscountUsage.discount_code_id == discount_code_id,
            DiscountUsage.client_profile_id == client_profile_id,
        )
    )
    return result.scalar_one()

async def increment_times_used(db: AsyncSession, discount_code_id: UUID) -> bool:
    """
    Bump ``times_used`` only while the code is under its total cap.

    The cap check runs inside the UPDATE itself, so the database serializes
    concurrent callers on the row. Returns False when no row was updated.
    """
    result = await db.execute(
        update(DiscountCode)
        .where(
            DiscountCode.id == discount_code_id,
            DiscountCode.deleted_at.is_(None),
            (DiscountCode.max_uses_total.is_(None)) | (DiscountCode.times_used < DiscountCode.max_uses_total),
        )
        .values(times_used=DiscountCode.times_used + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

async def get_usage_stats(db: AsyncSession, discount_code_id: UUID) -> Dict[str, Any]:
    """
    Aggregate the recorded usages of a code.
    """
    result = await db.execute(
        select(
            func.count(DiscountUsage.id),
            func.count(func.distinct(DiscountUsage.client_profile_id)),
            func.coalesce(func.sum(DiscountUsage.discount_amount), 0),
            func.coalesce(func.sum(DiscountUsage.original_amount), 0),
        ).where(DiscountUsage.discount_code_id == discount_code_id)
    )
    total_uses, unique_clients, total_discount, total_order = result.one()
    return {
        "total_uses": total_uses,
        "unique_clients": unique_clients,
        "total_discount_given": total_discount,
        "total_order_value": total_order,
    }

async def count_active_codes(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count()).select_from(DiscountCode)
        .where(DiscountCode.deleted_at.is_(None), DiscountCode.is_active.is_(True))
    )
    return result.scalar_one()
