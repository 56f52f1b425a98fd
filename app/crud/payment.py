from datetime import datetime
from typing import List, Optional, Dict, Any, Sequence, Tuple
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.db.models import Payment, PaymentStatus, PaymentType

logger = logging.getLogger(__name__)

async def get_payment(db: AsyncSession, payment_id: UUID) -> Optional[Payment]:
    """
    Get a live payment by ID.
    """
    result = await db.execute(
        select(Payment).where(Payment.id == payment_id, Payment.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()

async def get_payment_for_update(db: AsyncSession, payment_id: UUID) -> Optional[Payment]:
    """
    Get a payment and lock its row until the current transaction ends.
    """
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id, Payment.deleted_at.is_(None))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()

async def get_live_payment(db: AsyncSession, case_id: UUID, payment_type: PaymentType) -> Optional[Payment]:
    """
    Get the pending or settled payment of ``payment_type`` on a case.
    Rejected (failed) proofs do not count.
    """
    result = await db.execute(
        select(Payment)
        .where(
            Payment.case_id == case_id,
            Payment.payment_type == payment_type,
            Payment.status != PaymentStatus.failed,
            Payment.deleted_at.is_(None),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()

def _apply_filters(query, filters: Optional[Dict[str, Any]]):
    if not filters:
        return query
    if client_profile_id := filters.get("client_profile_id"):
        query = query.where(Payment.client_profile_id == client_profile_id)
    if case_id := filters.get("case_id"):
        query = query.where(Payment.case_id == case_id)
    if status := filters.get("status"):
        query = query.where(Payment.status == status)
    if payment_type := filters.get("payment_type"):
        query = query.where(Payment.payment_type == payment_type)
    if filters.get("refund_requested"):
        query = query.where(Payment.refund_requested_at.is_not(None), Payment.is_refunded.is_(False))
    return query

async def get_payments(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 20,
    filters: Optional[Dict[str, Any]] = None,
    oldest_first: bool = False
) -> Tuple[List[Payment], int]:
    """
    Get a page of payments plus the total matching count.
    """
    base = select(Payment).where(Payment.deleted_at.is_(None))
    count_query = _apply_filters(
        select(func.count()).select_from(Payment).where(Payment.deleted_at.is_(None)), filters
    )
    order = Payment.created_at.asc() if oldest_first else Payment.created_at.desc()

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        _apply_filters(base, filters).order_by(order).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total

async def get_totals_by_type(
    db: AsyncSession,
    statuses: Sequence[PaymentStatus],
    verified_since: Optional[datetime] = None
) -> List[Tuple[PaymentType, int, Any]]:
    """
    Count and sum payments in any of ``statuses``, grouped by payment type.
    """
    query = (
        select(Payment.payment_type, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.status.in_(statuses), Payment.deleted_at.is_(None))
    )
    if verified_since is not None:
        query = query.where(Payment.verified_at >= verified_since)
    result = await db.execute(query.group_by(Payment.payment_type))
    return [tuple(row) for row in result.all()]

async def get_refunded_total(db: AsyncSession) -> Any:
    result = await db.execute(
        select(func.coalesce(func.sum(Payment.refunded_amount), 0))
        .where(Payment.is_refunded.is_(True), Payment.deleted_at.is_(None))
    )
    return result.scalar_one()

async def count_by_status(db: AsyncSession, status: PaymentStatus) -> int:
    result = await db.execute(
        select(func.count()).select_from(Payment)
        .where(Payment.status == status, Payment.deleted_at.is_(None))
    )
    return result.scalar_one()

async def get_collected_total(
    db: AsyncSession,
    verified_since: Optional[datetime] = None,
    verified_before: Optional[datetime] = None
) -> Any:
    """
    Sum of money received: verified payments plus those later refunded.
    """
    query = select(func.coalesce(func.sum(Payment.amount), 0)).where(
        Payment.status.in_((PaymentStatus.verified, PaymentStatus.refunded)),
        Payment.deleted_at.is_(None),
    )
    if verified_since is not None:
        query = query.where(Payment.verified_at >= verified_since)
    if verified_before is not None:
        query = query.where(Payment.verified_at < verified_before)
    return (await db.execute(query)).scalar_one()

async def get_recent_payments(db: AsyncSession, limit: int = 10) -> List[Payment]:
    result = await db.execute(
        select(Payment).where(Payment.deleted_at.is_(None)).order_by(Payment.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())
