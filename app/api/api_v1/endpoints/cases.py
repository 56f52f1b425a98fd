from typing import List, Any, Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.core.database import get_db
from app.core.auth import get_current_principal
from app.db.models import CaseStatus
from app.schemas.auth import Principal
from app.schemas.base import Message, Pagination
from app.schemas.case import (
    AllowedStatuses,
    Case,
    CaseCreate,
    CaseList,
    CaseResponse,
    CaseStats,
    CaseStatusHistory,
    CaseUpdate,
    StatusChange,
)
from app.schemas.quote import QuoteResponse
from app.services import case_workflow, quote_service
from app.services.notification_service import NotificationDispatcher, get_notifier
from uuid import UUID

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/", response_model=Case, status_code=status.HTTP_201_CREATED)
async def create_case(
    *,
    db: AsyncSession = Depends(get_db),
    case_in: CaseCreate,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Create new case.

    Clients only. Set ``is_draft`` to false to submit it straight away.
    """
    logger.info(f"Case creation requested by user: {principal.user_id}")
    return await case_workflow.create_case(db, principal, case_in, notifier=notifier)

@router.get("/", response_model=CaseList)
async def get_cases(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Cases per page"),
    status: Optional[CaseStatus] = Query(None, description="Filter by case status"),
    client_profile_id: Optional[UUID] = Query(None, description="Filter by client (staff only)"),
    search: Optional[str] = Query(None, description="Match case number or patient reference")
) -> Any:
    """
    Retrieve cases with optional filtering.

    Clients only see their own cases; staff see every submitted case.
    """
    logger.info(f"Case list requested by user: {principal.user_id}")

    cases, total = await case_workflow.list_cases(
        db, principal, page=page, limit=limit, status=status,
        client_profile_id=client_profile_id, search=search,
    )

    logger.info(f"Retrieved {len(cases)} of {total} cases")
    return CaseList(cases=cases, pagination=Pagination.build(page, limit, total))

@router.get("/stats", response_model=CaseStats)
async def get_case_stats(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Case statistics for the calling client.
    """
    return await case_workflow.get_case_stats(db, principal)

@router.get("/{case_id}", response_model=CaseResponse)
async def read_case(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case to retrieve"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Get case by ID.

    Clients can only view their own cases.
    """
    logger.info(f"Case {case_id} requested by user: {principal.user_id}")
    return await case_workflow.get_case(db, principal, case_id)

@router.put("/{case_id}", response_model=Case)
async def update_case(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case to update"),
    case_in: CaseUpdate,
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Update a draft case.

    Only the owning client can edit, and only before submission.
    """
    logger.info(f"Case update requested for {case_id} by user: {principal.user_id}")
    return await case_workflow.update_case(db, principal, case_id, case_in)

@router.delete("/{case_id}", response_model=Message)
async def delete_case(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case to delete"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Delete case.

    Clients may delete their own drafts; admins may delete any case.
    """
    logger.info(f"Case deletion requested for {case_id} by user: {principal.user_id}")
    await case_workflow.delete_case(db, principal, case_id)
    return Message(message="Case deleted")

@router.post("/{case_id}/submit", response_model=Case)
async def submit_case(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the draft to submit"),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Submit a complete draft.
    """
    logger.info(f"Case submission requested for {case_id} by user: {principal.user_id}")
    return await case_workflow.submit_case(db, principal, case_id, notifier=notifier)

@router.patch("/{case_id}/status", response_model=Case)
async def change_case_status(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    change_in: StatusChange,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Move a case to a new status.

    The allowed targets depend on the current status and the caller's role;
    a refused move returns them in ``allowed_statuses``.
    """
    logger.info(f"Status change to {change_in.status.value} requested for {case_id} by user: {principal.user_id}")
    return await case_workflow.change_status(
        db, principal, case_id, change_in.status, notes=change_in.notes, notifier=notifier
    )

@router.get("/{case_id}/allowed-statuses", response_model=AllowedStatuses)
async def get_allowed_statuses(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Statuses the caller may move the case to.
    """
    current, allowed = await case_workflow.get_allowed_statuses(db, principal, case_id)
    return AllowedStatuses(current_status=current, allowed_statuses=allowed)

@router.get("/{case_id}/history", response_model=List[CaseStatusHistory])
async def get_status_history(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Status history of a case, newest first.
    """
    rows = await case_workflow.get_status_history(db, principal, case_id)
    return [CaseStatusHistory.from_row(row) for row in rows]

@router.get("/{case_id}/quotes", response_model=List[QuoteResponse])
async def get_case_quotes(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Every quote issued for a case, newest first.
    """
    return await quote_service.list_case_quotes(db, principal, case_id)
