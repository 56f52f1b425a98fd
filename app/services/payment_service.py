"""
Payment ledger.

Clients upload proof of a bank transfer (or cash / card receipt); admins
verify or reject it. Every decision moves the owning case along its workflow
edge in the same transaction as the payment update.
"""

import logging
import secrets
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import atomic
from app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.policy import authorize
from app.crud import payment as payment_crud
from app.crud import quote as quote_crud
from app.db.models import CaseStatus, Payment, PaymentStatus, PaymentType
from app.schemas.auth import Principal
from app.schemas.payment import ProductionPaymentCreate, StudyPaymentCreate
from app.services import case_workflow
from app.services.pricing import round2, to_decimal
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

_TYPE_LABELS = {
    PaymentType.study_fee: "study fee",
    PaymentType.production_fee: "production fee",
}


def generate_payment_number() -> str:
    return f"PAY-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


async def _load_payment(db: AsyncSession, payment_id: UUID) -> Payment:
    payment = await payment_crud.get_payment_for_update(db, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


def _new_payment(case, payment_in, payment_type: PaymentType, quote_id: Optional[UUID] = None) -> Payment:
    now = utcnow()
    return Payment(
        payment_number=generate_payment_number(),
        case_id=case.id,
        quote_id=quote_id,
        client_profile_id=case.client_profile_id,
        payment_type=payment_type,
        amount=round2(payment_in.amount),
        currency=settings.CURRENCY,
        payment_method=payment_in.payment_method,
        status=PaymentStatus.pending,
        proof_url=payment_in.proof_url,
        proof_uploaded_at=now,
        transaction_id=payment_in.transaction_id,
        transaction_date=payment_in.transaction_date,
        notes=payment_in.notes,
    )


async def _notify_admins_uploaded(notifier, payment: Payment, case) -> None:
    await notifier.notify_admins(
        "payment_uploaded",
        "Payment awaiting verification",
        f"A {_TYPE_LABELS[payment.payment_type]} payment of {payment.amount} {payment.currency} "
        f"was uploaded for case {case.case_number}.",
        action_url=f"/admin/payments/{payment.id}",
        metadata={"case_id": str(case.id), "payment_id": str(payment.id)},
    )


async def upload_study_payment(
    db: AsyncSession,
    principal: Principal,
    payment_in: StudyPaymentCreate,
    notifier=None,
) -> Payment:
    """
    Record proof of the study fee for a draft case and send it for verification.
    """
    async with atomic(db):
        case = await case_workflow.load_case(db, payment_in.case_id, for_update=True)
        authorize(principal, "payment.upload", case.client_profile_id)

        if CaseStatus(case.status) != CaseStatus.draft:
            raise InvalidStateError(
                "Study fee can only be paid for draft cases",
                current_status=CaseStatus(case.status).value,
            )
        if to_decimal(payment_in.amount) != to_decimal(settings.STUDY_FEE_AMOUNT):
            raise ValidationError(
                f"Study fee must be {settings.STUDY_FEE_AMOUNT} {settings.CURRENCY}",
                errors={"amount": f"Must equal {settings.STUDY_FEE_AMOUNT}"},
            )
        if await payment_crud.get_live_payment(db, case.id, PaymentType.study_fee) is not None:
            raise ConflictError("A study fee payment already exists for this case", code="duplicate_payment")

        payment = _new_payment(case, payment_in, PaymentType.study_fee)
        db.add(payment)

        case.is_draft = False
        case.submitted_at = utcnow()
        case_workflow.workflow_transition(
            db, case, CaseStatus.pending_study_payment, principal, "Study fee proof uploaded"
        )

    logger.info(f"Study payment {payment.payment_number} uploaded for case {case.case_number}")
    if notifier is not None:
        await _notify_admins_uploaded(notifier, payment, case)
    return payment


async def upload_production_payment(
    db: AsyncSession,
    principal: Principal,
    payment_in: ProductionPaymentCreate,
    notifier=None,
) -> Payment:
    """
    Record proof of the production fee against the accepted quote.
    """
    async with atomic(db):
        case = await case_workflow.load_case(db, payment_in.case_id, for_update=True)
        authorize(principal, "payment.upload", case.client_profile_id)

        if CaseStatus(case.status) != CaseStatus.quote_accepted:
            raise InvalidStateError(
                "Production fee can only be paid after the quote is accepted",
                current_status=CaseStatus(case.status).value,
            )

        quote = await quote_crud.get_quote(db, payment_in.quote_id)
        if quote is None or quote.case_id != case.id:
            raise NotFoundError("Quote not found for this case")
        if not quote.is_accepted:
            raise InvalidStateError("Quote has not been accepted")

        if await payment_crud.get_live_payment(db, case.id, PaymentType.production_fee) is not None:
            raise ConflictError("A production fee payment already exists for this case", code="duplicate_payment")

        payment = _new_payment(case, payment_in, PaymentType.production_fee, quote_id=quote.id)
        db.add(payment)

        case_workflow.workflow_transition(
            db, case, CaseStatus.pending_production_payment, principal, "Production fee proof uploaded"
        )

    if to_decimal(payment.amount) != to_decimal(quote.total_amount):
        logger.warning(
            f"Production payment {payment.payment_number} amount {payment.amount} "
            f"differs from quote total {quote.total_amount}"
        )
    logger.info(f"Production payment {payment.payment_number} uploaded for case {case.case_number}")
    if notifier is not None:
        await _notify_admins_uploaded(notifier, payment, case)
    return payment


async def verify_payment(
    db: AsyncSession,
    principal: Principal,
    payment_id: UUID,
    notes: Optional[str] = None,
    notifier=None,
) -> Payment:
    """
    Confirm a pending payment. Study fees start the study; production fees start production.
    """
    authorize(principal, "payment.verify")

    async with atomic(db):
        payment = await _load_payment(db, payment_id)
        if payment.status != PaymentStatus.pending:
            raise InvalidStateError(
                f"Only pending payments can be verified (status: {payment.status.value})"
            )
        case = await case_workflow.load_case(db, payment.case_id, for_update=True)

        now = utcnow()
        payment.status = PaymentStatus.verified
        payment.verified_by_id = principal.profile_id
        payment.verified_at = now
        payment.updated_at = now
        if notes:
            payment.notes = notes

        target = CaseStatus.submitted if payment.payment_type == PaymentType.study_fee else CaseStatus.in_production
        case_workflow.workflow_transition(
            db, case, target, principal, f"Payment {payment.payment_number} verified"
        )

    logger.info(f"Payment {payment.payment_number} verified by admin {principal.profile_id}")
    if notifier is not None:
        await notifier.notify_client(
            case,
            "payment_verified",
            "Payment verified",
            f"Your {_TYPE_LABELS[payment.payment_type]} payment of {payment.amount} {payment.currency} was verified.",
            metadata={"payment_id": str(payment.id)},
        )
    return payment


async def reject_payment(
    db: AsyncSession,
    principal: Principal,
    payment_id: UUID,
    reason: str,
    notifier=None,
) -> Payment:
    """
    Refuse a pending payment proof and step the case back so a new proof can follow.
    """
    authorize(principal, "payment.reject")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required", errors={"rejection_reason": "Reason is required"})

    async with atomic(db):
        payment = await _load_payment(db, payment_id)
        if payment.status != PaymentStatus.pending:
            raise InvalidStateError(
                f"Only pending payments can be rejected (status: {payment.status.value})"
            )
        case = await case_workflow.load_case(db, payment.case_id, for_update=True)

        payment.status = PaymentStatus.failed
        payment.rejection_reason = reason
        payment.verified_by_id = principal.profile_id
        payment.verified_at = utcnow()
        payment.updated_at = payment.verified_at

        target = CaseStatus.submitted if payment.payment_type == PaymentType.study_fee else CaseStatus.quote_accepted
        case_workflow.workflow_transition(
            db, case, target, principal, f"Payment {payment.payment_number} rejected: {reason}"
        )

    logger.info(f"Payment {payment.payment_number} rejected by admin {principal.profile_id}")
    if notifier is not None:
        await notifier.notify_client(
            case,
            "payment_rejected",
            "Payment rejected",
            f"Your {_TYPE_LABELS[payment.payment_type]} payment was rejected: {reason}",
            metadata={"payment_id": str(payment.id)},
        )
    return payment


async def request_refund(
    db: AsyncSession,
    principal: Principal,
    payment_id: UUID,
    reason: str,
    notifier=None,
) -> Payment:
    """
    Ask for a production fee to be refunded. Study fees are non-refundable.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Refund reason is required", errors={"reason": "Reason is required"})

    async with atomic(db):
        payment = await _load_payment(db, payment_id)
        authorize(principal, "refund.request", payment.client_profile_id)

        if payment.payment_type == PaymentType.study_fee:
            raise InvalidStateError("Study fee payments are non-refundable", code="non_refundable")
        if payment.is_refunded or payment.status == PaymentStatus.refunded:
            raise InvalidStateError("Payment has already been refunded")
        if payment.status != PaymentStatus.verified:
            raise InvalidStateError("Only verified payments can be refunded")
        if payment.refund_requested_at is not None:
            raise InvalidStateError("A refund request is already open for this payment")

        case = await case_workflow.load_case(db, payment.case_id, for_update=True)

        now = utcnow()
        payment.refund_requested_at = now
        payment.refund_reason = reason
        payment.refund_notes = None
        payment.updated_at = now

        case_workflow.workflow_transition(
            db, case, CaseStatus.refund_requested, principal, f"Refund requested: {reason}"
        )

    logger.info(f"Refund requested for payment {payment.payment_number} by client {principal.profile_id}")
    if notifier is not None:
        await notifier.notify_admins(
            "refund_requested",
            "Refund requested",
            f"A refund was requested for payment {payment.payment_number} on case {case.case_number}.",
            action_url=f"/admin/payments/{payment.id}",
            metadata={"case_id": str(case.id), "payment_id": str(payment.id)},
        )
    return payment


async def approve_refund(
    db: AsyncSession,
    principal: Principal,
    payment_id: UUID,
    refund_amount,
    notes: Optional[str] = None,
    notifier=None,
) -> Payment:
    authorize(principal, "refund.approve")

    async with atomic(db):
        payment = await _load_payment(db, payment_id)
        if payment.refund_requested_at is None or payment.is_refunded:
            raise InvalidStateError("No open refund request for this payment")

        amount = to_decimal(refund_amount)
        if amount <= 0 or amount > to_decimal(payment.amount):
            raise ValidationError(
                f"Refund amount must be greater than 0 and at most {payment.amount}",
                errors={"refund_amount": f"Must be between 0 and {payment.amount}"},
            )

        case = await case_workflow.load_case(db, payment.case_id, for_update=True)

        now = utcnow()
        payment.status = PaymentStatus.refunded
        payment.is_refunded = True
        payment.refunded_amount = round2(amount)
        payment.refunded_at = now
        payment.refund_notes = notes
        payment.updated_at = now

        case_workflow.workflow_transition(
            db, case, CaseStatus.refunded, principal, f"Refund of {payment.refunded_amount} approved"
        )

    logger.info(f"Refund of {payment.refunded_amount} approved for payment {payment.payment_number}")
    if notifier is not None:
        await notifier.notify_client(
            case,
            "refund_approved",
            "Refund approved",
            f"A refund of {payment.refunded_amount} {payment.currency} was approved for case {case.case_number}.",
            metadata={"payment_id": str(payment.id)},
        )
    return payment


async def reject_refund(
    db: AsyncSession,
    principal: Principal,
    payment_id: UUID,
    reason: str,
    notifier=None,
) -> Payment:
    """
    Close a refund request without paying it. A case waiting on the decision
    goes back to production; otherwise its status is left alone.
    """
    authorize(principal, "refund.reject")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required", errors={"reason": "Reason is required"})

    async with atomic(db):
        payment = await _load_payment(db, payment_id)
        if payment.refund_requested_at is None or payment.is_refunded:
            raise InvalidStateError("No open refund request for this payment")

        case = await case_workflow.load_case(db, payment.case_id, for_update=True)

        payment.refund_requested_at = None
        payment.refund_reason = None
        payment.refund_notes = f"Refund rejected: {reason}"
        payment.updated_at = utcnow()

        if CaseStatus(case.status) == CaseStatus.refund_requested:
            case_workflow.workflow_transition(
                db, case, CaseStatus.in_production, principal, f"Refund rejected: {reason}"
            )

    logger.info(f"Refund request for payment {payment.payment_number} rejected by admin {principal.profile_id}")
    if notifier is not None:
        await notifier.notify_client(
            case,
            "refund_rejected",
            "Refund request rejected",
            f"Your refund request for case {case.case_number} was rejected: {reason}",
            metadata={"payment_id": str(payment.id)},
        )
    return payment


async def get_payment(db: AsyncSession, principal: Principal, payment_id: UUID) -> Payment:
    payment = await payment_crud.get_payment(db, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    authorize(principal, "payment.read", payment.client_profile_id)
    return payment


async def list_payments(
    db: AsyncSession,
    principal: Principal,
    page: int = 1,
    limit: int = 20,
    case_id: Optional[UUID] = None,
    status: Optional[PaymentStatus] = None,
    payment_type: Optional[PaymentType] = None,
) -> Tuple[List[Payment], int]:
    """
    Clients see their own payments; admins see everything.
    """
    authorize(principal, "payment.list")

    filters: Dict[str, Any] = {"case_id": case_id, "status": status, "payment_type": payment_type}
    if principal.is_client:
        filters["client_profile_id"] = principal.profile_id
    return await payment_crud.get_payments(db, skip=(page - 1) * limit, limit=limit, filters=filters)


async def list_pending_verifications(
    db: AsyncSession,
    principal: Principal,
    page: int = 1,
    limit: int = 20,
    payment_type: Optional[PaymentType] = None,
) -> Tuple[List[Payment], int]:
    """
    Payments waiting for an admin decision, oldest first.
    """
    authorize(principal, "payment.verify")
    filters = {"status": PaymentStatus.pending, "payment_type": payment_type}
    return await payment_crud.get_payments(
        db, skip=(page - 1) * limit, limit=limit, filters=filters, oldest_first=True
    )


async def list_refund_requests(
    db: AsyncSession,
    principal: Principal,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Payment], int]:
    authorize(principal, "refund.approve")
    return await payment_crud.get_payments(
        db, skip=(page - 1) * limit, limit=limit, filters={"refund_requested": True}, oldest_first=True
    )


async def revenue_report(db: AsyncSession, principal: Principal) -> Dict[str, Any]:
    """
    Collected money by payment type, what was refunded, and the net.

    Refunded payments were collected first, so they count towards the
    collected total as well as the refunded one.
    """
    authorize(principal, "payment.report")

    rows = await payment_crud.get_totals_by_type(db, (PaymentStatus.verified, PaymentStatus.refunded))
    by_type = [
        {"payment_type": payment_type, "count": count, "total": round2(total)}
        for payment_type, count, total in rows
    ]
    collected = round2(sum((to_decimal(item["total"]) for item in by_type), Decimal("0")))
    refunded = round2(await payment_crud.get_refunded_total(db))

    return {
        "currency": settings.CURRENCY,
        "verified_total": collected,
        "refunded_total": refunded,
        "net_total": round2(collected - refunded),
        "pending_count": await payment_crud.count_by_status(db, PaymentStatus.pending),
        "by_type": by_type,
    }
