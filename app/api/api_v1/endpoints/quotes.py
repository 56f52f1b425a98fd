from typing import Any
from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.core.database import get_db
from app.core.auth import get_current_principal
from app.schemas.auth import Principal
from app.schemas.quote import QuoteCreate, QuoteReject, QuoteResponse, QuoteRevise, StaffQuoteResponse
from app.services import quote_service
from app.services.notification_service import NotificationDispatcher, get_notifier
from uuid import UUID

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/", response_model=StaffQuoteResponse, status_code=status.HTTP_201_CREATED)
async def create_quote(
    *,
    db: AsyncSession = Depends(get_db),
    quote_in: QuoteCreate,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Create and send a quote for a case whose study is completed.

    Admin only.
    """
    logger.info(f"Quote creation for case {quote_in.case_id} requested by user: {principal.user_id}")
    return await quote_service.create_quote(db, principal, quote_in, notifier=notifier)

@router.get("/{quote_id}", response_model=QuoteResponse)
async def read_quote(
    *,
    db: AsyncSession = Depends(get_db),
    quote_id: UUID = Path(..., description="The ID of the quote"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Get quote by ID.
    """
    return await quote_service.get_quote(db, principal, quote_id)

@router.post("/{quote_id}/accept", response_model=QuoteResponse)
async def accept_quote(
    *,
    db: AsyncSession = Depends(get_db),
    quote_id: UUID = Path(..., description="The ID of the quote"),
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Accept a quote.

    An expired quote cancels the case and returns an ``expired`` error.
    """
    logger.info(f"Quote {quote_id} acceptance requested by user: {principal.user_id}")
    return await quote_service.accept_quote(db, principal, quote_id, notifier=notifier)

@router.post("/{quote_id}/reject", response_model=QuoteResponse)
async def reject_quote(
    *,
    db: AsyncSession = Depends(get_db),
    quote_id: UUID = Path(..., description="The ID of the quote"),
    reject_in: QuoteReject,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Reject a quote, optionally asking for a revision.
    """
    logger.info(f"Quote {quote_id} rejection requested by user: {principal.user_id}")
    return await quote_service.reject_quote(
        db, principal, quote_id, reject_in.rejection_reason,
        request_revision=reject_in.request_revision, notifier=notifier,
    )

@router.put("/{quote_id}/revise", response_model=StaffQuoteResponse)
async def revise_quote(
    *,
    db: AsyncSession = Depends(get_db),
    quote_id: UUID = Path(..., description="The ID of the rejected quote"),
    quote_in: QuoteRevise,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Revise a rejected quote and send it again.

    Admin only.
    """
    logger.info(f"Quote {quote_id} revision requested by user: {principal.user_id}")
    return await quote_service.revise_quote(db, principal, quote_id, quote_in, notifier=notifier)
