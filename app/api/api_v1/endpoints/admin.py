from typing import Any, Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.core.database import get_db
from app.core.auth import get_current_principal
from app.db.models import DiscountType, PaymentType
from app.schemas.auth import Principal
from app.schemas.base import Message, Pagination
from app.schemas.case import Case, StatusOverride
from app.schemas.comment import CaseAssign, Comment
from app.schemas.dashboard import Dashboard, SystemStats
from app.schemas.discount import (
    DiscountCode,
    DiscountCodeCreate,
    DiscountCodeDetail,
    DiscountCodeList,
    DiscountCodeUpdate,
)
from app.schemas.payment import PaymentList, RevenueReport
from app.services import case_workflow, comment_service, dashboard_service, discount_service, payment_service
from app.services.notification_service import NotificationDispatcher, get_notifier
from uuid import UUID

logger = logging.getLogger(__name__)
router = APIRouter()

@router.patch("/cases/{case_id}/status", response_model=Case)
async def override_case_status(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    override_in: StatusOverride,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Set any status on a case, bypassing the workflow rules.

    A reason is mandatory and is written to the status history.
    """
    logger.info(f"Status override to {override_in.status.value} on case {case_id} by user: {principal.user_id}")
    return await case_workflow.override_status(
        db, principal, case_id, override_in.status, override_in.reason, notifier=notifier
    )

@router.put("/cases/{case_id}/assign", response_model=Comment)
async def assign_case(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    assign_in: CaseAssign,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Assign a case to a designer.

    Recorded as an internal comment on the case and announced to the designer.
    """
    logger.info(f"Assignment of case {case_id} to designer {assign_in.designer_profile_id} by user: {principal.user_id}")
    return await comment_service.assign_case(
        db, principal, case_id, assign_in.designer_profile_id, assign_in.notes, notifier=notifier
    )

@router.get("/dashboard", response_model=Dashboard)
async def get_dashboard(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Platform overview for admins.
    """
    return await dashboard_service.get_dashboard(db, principal)

@router.get("/stats", response_model=SystemStats)
async def get_system_stats(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    period: int = Query(30, ge=1, le=365, description="Window in days")
) -> Any:
    """
    Designer activity, client mix, and case and revenue figures over a period.
    """
    return await dashboard_service.get_system_stats(db, principal, period_days=period)

@router.get("/payments/pending", response_model=PaymentList)
async def get_pending_payments(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Payments per page"),
    payment_type: Optional[PaymentType] = Query(None, description="Filter by payment type")
) -> Any:
    """
    Payments waiting for verification, oldest first.
    """
    payments, total = await payment_service.list_pending_verifications(
        db, principal, page=page, limit=limit, payment_type=payment_type
    )
    return PaymentList(payments=payments, pagination=Pagination.build(page, limit, total))

@router.get("/payments/refund-requests", response_model=PaymentList)
async def get_refund_requests(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Payments per page")
) -> Any:
    """
    Payments with an open refund request, oldest first.
    """
    payments, total = await payment_service.list_refund_requests(db, principal, page=page, limit=limit)
    return PaymentList(payments=payments, pagination=Pagination.build(page, limit, total))

@router.get("/payments/revenue", response_model=RevenueReport)
async def get_revenue_report(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Collected, refunded and net revenue.
    """
    return await payment_service.revenue_report(db, principal)

@router.post("/discount-codes", response_model=DiscountCode, status_code=status.HTTP_201_CREATED)
async def create_discount_code(
    *,
    db: AsyncSession = Depends(get_db),
    code_in: DiscountCodeCreate,
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Create a discount code.
    """
    logger.info(f"Discount code creation requested by user: {principal.user_id}")
    return await discount_service.create_discount_code(db, principal, code_in)

@router.get("/discount-codes", response_model=DiscountCodeList)
async def get_discount_codes(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Codes per page"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    discount_type: Optional[DiscountType] = Query(None, description="Filter by discount type"),
    search: Optional[str] = Query(None, description="Match code or description")
) -> Any:
    """
    Retrieve discount codes with optional filtering.
    """
    codes, total = await discount_service.list_discount_codes(
        db, principal, page=page, limit=limit, is_active=is_active, discount_type=discount_type, search=search
    )
    return DiscountCodeList(codes=codes, pagination=Pagination.build(page, limit, total))

@router.get("/discount-codes/{discount_code_id}", response_model=DiscountCodeDetail)
async def read_discount_code(
    *,
    db: AsyncSession = Depends(get_db),
    discount_code_id: UUID = Path(..., description="The ID of the discount code"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Get a discount code with its usage statistics.
    """
    discount_code, stats = await discount_service.get_discount_code(db, principal, discount_code_id)
    return DiscountCodeDetail(**DiscountCode.model_validate(discount_code).model_dump(), stats=stats)

@router.put("/discount-codes/{discount_code_id}", response_model=DiscountCode)
async def update_discount_code(
    *,
    db: AsyncSession = Depends(get_db),
    discount_code_id: UUID = Path(..., description="The ID of the discount code"),
    code_in: DiscountCodeUpdate,
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Update a discount code.
    """
    logger.info(f"Discount code {discount_code_id} update requested by user: {principal.user_id}")
    return await discount_service.update_discount_code(db, principal, discount_code_id, code_in)

@router.delete("/discount-codes/{discount_code_id}", response_model=Message)
async def delete_discount_code(
    *,
    db: AsyncSession = Depends(get_db),
    discount_code_id: UUID = Path(..., description="The ID of the discount code"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Delete a discount code. Past usages are kept.
    """
    logger.info(f"Discount code {discount_code_id} deletion requested by user: {principal.user_id}")
    await discount_service.delete_discount_code(db, principal, discount_code_id)
    return Message(message="Discount code deleted")
