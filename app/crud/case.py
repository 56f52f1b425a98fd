from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.db.models import ActorKind, Case, CaseStatus, CaseStatusHistory

logger = logging.getLogger(__name__)

async def get_case(db: AsyncSession, case_id: UUID) -> Optional[Case]:
    """
    Get a live (not soft-deleted) case by ID.
    """
    result = await db.execute(
        select(Case).where(Case.id == case_id, Case.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()

async def get_case_for_update(db: AsyncSession, case_id: UUID) -> Optional[Case]:
    """
    Get a case and lock its row until the current transaction ends.
    """
    result = await db.execute(
        select(Case)
        .where(Case.id == case_id, Case.deleted_at.is_(None))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()

def _apply_filters(query, filters: Optional[Dict[str, Any]]):
    if not filters:
        return query
    if client_profile_id := filters.get("client_profile_id"):
        query = query.where(Case.client_profile_id == client_profile_id)
    if status := filters.get("status"):
        query = query.where(Case.status == status)
    if filters.get("exclude_drafts"):
        query = query.where(Case.is_draft.is_(False))
    if search := filters.get("search"):
        pattern = f"%{search}%"
        query = query.where(Case.case_number.ilike(pattern) | Case.patient_ref.ilike(pattern))
    return query

async def get_cases(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 20,
    filters: Optional[Dict[str, Any]] = None
) -> Tuple[List[Case], int]:
    """
    Get a page of cases, newest first, plus the total matching count.
    """
    query = _apply_filters(select(Case).where(Case.deleted_at.is_(None)), filters)
    count_query = _apply_filters(
        select(func.count()).select_from(Case).where(Case.deleted_at.is_(None)), filters
    )

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(Case.created_at.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total

async def get_status_history(db: AsyncSession, case_id: UUID) -> List[CaseStatusHistory]:
    """
    Get the status history of a case, newest first.
    """
    result = await db.execute(
        select(CaseStatusHistory)
        .where(CaseStatusHistory.case_id == case_id)
        .order_by(CaseStatusHistory.created_at.desc(), CaseStatusHistory.id.desc())
    )
    return list(result.scalars().all())

def _scope(query, client_profile_id: Optional[UUID] = None, created_since: Optional[datetime] = None):
    query = query.where(Case.deleted_at.is_(None))
    if client_profile_id is not None:
        query = query.where(Case.client_profile_id == client_profile_id)
    if created_since is not None:
        query = query.where(Case.created_at >= created_since)
    return query

async def count_cases(
    db: AsyncSession,
    client_profile_id: Optional[UUID] = None,
    created_since: Optional[datetime] = None
) -> int:
    result = await db.execute(_scope(select(func.count()).select_from(Case), client_profile_id, created_since))
    return result.scalar_one()

async def count_by_status(
    db: AsyncSession,
    client_profile_id: Optional[UUID] = None,
    created_since: Optional[datetime] = None
) -> Dict[CaseStatus, int]:
    """
    Live case counts grouped by status. Statuses with no cases are left out.
    """
    result = await db.execute(
        _scope(select(Case.status, func.count(Case.id)), client_profile_id, created_since).group_by(Case.status)
    )
    return {CaseStatus(status): count for status, count in result.all()}

async def count_by_procedure(db: AsyncSession, client_profile_id: Optional[UUID] = None) -> Dict[Optional[str], int]:
    result = await db.execute(
        _scope(select(Case.procedure_category, func.count(Case.id)), client_profile_id)
        .group_by(Case.procedure_category)
    )
    return {category: count for category, count in result.all()}

async def get_recent_cases(db: AsyncSession, limit: int = 5, client_profile_id: Optional[UUID] = None) -> List[Case]:
    result = await db.execute(
        _scope(select(Case), client_profile_id).order_by(Case.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())

async def count_transitions_by_actor(db: AsyncSession, to_status: CaseStatus) -> Dict[UUID, int]:
    """
    How many times each staff member moved a case into ``to_status``.
    """
    result = await db.execute(
        select(CaseStatusHistory.actor_id, func.count(CaseStatusHistory.id))
        .where(
            CaseStatusHistory.to_status == to_status,
            CaseStatusHistory.actor_kind.in_((ActorKind.designer, ActorKind.admin)),
            CaseStatusHistory.actor_id.is_not(None),
        )
        .group_by(CaseStatusHistory.actor_id)
    )
    return {actor_id: count for actor_id, count in result.all()}
