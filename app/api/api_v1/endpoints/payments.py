from typing import Any, Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.core.database import get_db
from app.core.auth import get_current_principal
from app.db.models import PaymentStatus, PaymentType
from app.schemas.auth import Principal
from app.schemas.base import Pagination
from app.schemas.payment import (
    Payment,
    PaymentList,
    PaymentReject,
    PaymentVerify,
    ProductionPaymentCreate,
    RefundApprove,
    RefundReject,
    RefundRequest,
    StudyPaymentCreate,
)
from app.services import payment_service
from app.services.notification_service import NotificationDispatcher, get_notifier
from uuid import UUID

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/study-fee", response_model=Payment, status_code=status.HTTP_201_CREATED)
async def upload_study_payment(
    *,
    db: AsyncSession = Depends(get_db),
    payment_in: StudyPaymentCreate,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Upload proof of the study fee for a draft case.
    """
    logger.info(f"Study payment upload for case {payment_in.case_id} by user: {principal.user_id}")
    return await payment_service.upload_study_payment(db, principal, payment_in, notifier=notifier)

@router.post("/production-fee", response_model=Payment, status_code=status.HTTP_201_CREATED)
async def upload_production_payment(
    *,
    db: AsyncSession = Depends(get_db),
    payment_in: ProductionPaymentCreate,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Upload proof of the production fee for an accepted quote.
    """
    logger.info(f"Production payment upload for case {payment_in.case_id} by user: {principal.user_id}")
    return await payment_service.upload_production_payment(db, principal, payment_in, notifier=notifier)

@router.get("/", response_model=PaymentList)
async def get_payments(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Payments per page"),
    case_id: Optional[UUID] = Query(None, description="Filter by case"),
    status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    payment_type: Optional[PaymentType] = Query(None, description="Filter by payment type")
) -> Any:
    """
    Retrieve payments. Clients only see their own.
    """
    payments, total = await payment_service.list_payments(
        db, principal, page=page, limit=limit, case_id=case_id, status=status, payment_type=payment_type
    )
    return PaymentList(payments=payments, pagination=Pagination.build(page, limit, total))

@router.get("/{payment_id}", response_model=Payment)
async def read_payment(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: UUID = Path(..., description="The ID of the payment"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Get payment by ID.
    """
    return await payment_service.get_payment(db, principal, payment_id)

@router.post("/{payment_id}/verify", response_model=Payment)
async def verify_payment(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: UUID = Path(..., description="The ID of the payment"),
    verify_in: PaymentVerify,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Verify a pending payment.

    Admin only.
    """
    logger.info(f"Payment {payment_id} verification by user: {principal.user_id}")
    return await payment_service.verify_payment(db, principal, payment_id, notes=verify_in.notes, notifier=notifier)

@router.post("/{payment_id}/reject", response_model=Payment)
async def reject_payment(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: UUID = Path(..., description="The ID of the payment"),
    reject_in: PaymentReject,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Reject a pending payment.

    Admin only.
    """
    logger.info(f"Payment {payment_id} rejection by user: {principal.user_id}")
    return await payment_service.reject_payment(
        db, principal, payment_id, reject_in.rejection_reason, notifier=notifier
    )

@router.post("/{payment_id}/refund-request", response_model=Payment)
async def request_refund(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: UUID = Path(..., description="The ID of the payment"),
    refund_in: RefundRequest,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Request a refund of a verified production fee.
    """
    logger.info(f"Refund request for payment {payment_id} by user: {principal.user_id}")
    return await payment_service.request_refund(db, principal, payment_id, refund_in.reason, notifier=notifier)

@router.post("/{payment_id}/refund/approve", response_model=Payment)
async def approve_refund(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: UUID = Path(..., description="The ID of the payment"),
    approve_in: RefundApprove,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Approve an open refund request.

    Admin only.
    """
    logger.info(f"Refund approval for payment {payment_id} by user: {principal.user_id}")
    return await payment_service.approve_refund(
        db, principal, payment_id, approve_in.refund_amount, notes=approve_in.notes, notifier=notifier
    )

@router.post("/{payment_id}/refund/reject", response_model=Payment)
async def reject_refund(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: UUID = Path(..., description="The ID of the payment"),
    reject_in: RefundReject,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Reject an open refund request.

    Admin only.
    """
    logger.info(f"Refund rejection for payment {payment_id} by user: {principal.user_id}")
    return await payment_service.reject_refund(db, principal, payment_id, reject_in.reason, notifier=notifier)
