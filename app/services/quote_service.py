"""
Quotes: pricing a studied case, and the client's answer to it.
"""

import logging
import secrets
from datetime import timedelta
from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import atomic
from app.core.exceptions import (
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.policy import authorize
from app.crud import discount as discount_crud
from app.crud import quote as quote_crud
from app.db.models import CaseQuote, CaseStatus
from app.schemas.auth import Principal
from app.schemas.quote import QuoteCreate, QuoteRevise
from app.services import case_workflow
from app.services.discount_service import (
    apply_totals,
    calculate_discount,
    fees_of,
    record_discount_usage,
)
from app.services.pricing import FeeBreakdown, compute_totals, round2, to_decimal
from app.utils.dates import ensure_aware, utcnow

logger = logging.getLogger(__name__)


def generate_quote_number() -> str:
    return f"QUOTE-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


def is_expired(quote: CaseQuote) -> bool:
    valid_until = ensure_aware(quote.valid_until)
    return valid_until is not None and valid_until < utcnow()


async def _load_quote(db: AsyncSession, quote_id: UUID, for_update: bool = True) -> CaseQuote:
    if for_update:
        quote = await quote_crud.get_quote_for_update(db, quote_id)
    else:
        quote = await quote_crud.get_quote(db, quote_id)
    if quote is None:
        raise NotFoundError("Quote not found")
    return quote


async def create_quote(db: AsyncSession, principal: Principal, quote_in: QuoteCreate, notifier=None) -> CaseQuote:
    """
    Price a case whose study is complete and send the quote to the client.
    """
    authorize(principal, "quote.create")

    async with atomic(db):
        case = await case_workflow.load_case(db, quote_in.case_id, for_update=True)
        if CaseStatus(case.status) != CaseStatus.study_completed:
            raise InvalidStateError(
                "Quotes can only be created for cases whose study is completed",
                current_status=CaseStatus(case.status).value,
            )

        fees = FeeBreakdown.of(
            settings.STUDY_FEE_AMOUNT if quote_in.study_fee is None else quote_in.study_fee,
            quote_in.design_fee,
            quote_in.production_fee,
            quote_in.delivery_fee,
        )
        if to_decimal(quote_in.discount_amount) > fees.total:
            raise ValidationError(
                "Discount cannot exceed the quoted fees",
                errors={"discount_amount": "Must not exceed the sum of fees"},
            )

        vat_rate = settings.DEFAULT_VAT_RATE if quote_in.vat_rate is None else to_decimal(quote_in.vat_rate)
        valid_until = quote_in.valid_until or utcnow() + timedelta(days=settings.QUOTE_VALIDITY_DAYS)
        if ensure_aware(valid_until) <= utcnow():
            raise ValidationError("Quote validity must end in the future", errors={"valid_until": "Must be in the future"})

        now = utcnow()
        quote = CaseQuote(
            quote_number=generate_quote_number(),
            case_id=case.id,
            study_fee=fees.study_fee,
            design_fee=fees.design_fee,
            production_fee=fees.production_fee,
            delivery_fee=fees.delivery_fee,
            vat_rate=round2(vat_rate),
            discount_reason=quote_in.discount_reason,
            notes=quote_in.notes,
            internal_notes=quote_in.internal_notes,
            created_by_id=principal.profile_id,
            is_sent=True,
            discount_code=None,
            sent_at=now,
            valid_until=valid_until,
        )
        apply_totals(quote, compute_totals(fees, vat_rate, quote_in.discount_amount))
        db.add(quote)

        case_workflow.workflow_transition(db, case, CaseStatus.quote_sent, principal, f"Quote {quote.quote_number} sent")

    logger.info(f"Quote {quote.quote_number} created for case {case.case_number}: total {quote.total_amount}")
    if notifier is not None:
        await notifier.notify_client(
            case,
            "quote_sent",
            "New quote available",
            f"A quote of {quote.total_amount} {settings.CURRENCY} is ready for case {case.case_number}.",
            metadata={"quote_id": str(quote.id)},
        )
    return quote


async def accept_quote(db: AsyncSession, principal: Principal, quote_id: UUID, notifier=None) -> CaseQuote:
    """
    Accept an open quote. An expired quote cancels the case instead.
    """
    expired_case = None

    async with atomic(db):
        quote = await _load_quote(db, quote_id)
        case = await case_workflow.load_case(db, quote.case_id, for_update=True)
        authorize(principal, "quote.accept", case.client_profile_id)

        if quote.is_accepted:
            raise InvalidStateError("Quote has already been accepted")
        if quote.is_rejected:
            raise InvalidStateError("Quote has been rejected")
        if CaseStatus(case.status) != CaseStatus.quote_sent:
            raise InvalidStateError(
                "Case is not awaiting a quote decision",
                current_status=CaseStatus(case.status).value,
            )

        if is_expired(quote):
            case_workflow.workflow_transition(
                db, case, CaseStatus.cancelled, principal, f"Quote {quote.quote_number} expired"
            )
            expired_case = case
        else:
            now = utcnow()
            quote.is_accepted = True
            quote.accepted_at = now
            quote.updated_at = now

            if quote.discount_code_id is not None:
                discount_code = await discount_crud.get_discount_code(db, quote.discount_code_id)
                if discount_code is None:
                    raise InvalidStateError("The discount code on this quote is no longer available")
                if discount_code.max_uses_per_client is not None:
                    used = await discount_crud.count_client_usages(db, discount_code.id, case.client_profile_id)
                    if used >= discount_code.max_uses_per_client:
                        raise InvalidStateError("You have already used this discount code", code="client_usage_limit")
                await record_discount_usage(db, discount_code, quote, case.client_profile_id)

            case_workflow.workflow_transition(
                db, case, CaseStatus.quote_accepted, principal, f"Quote {quote.quote_number} accepted"
            )

    if expired_case is not None:
        logger.info(f"Quote {quote.quote_number} expired on acceptance; case {case.case_number} cancelled")
        if notifier is not None:
            await notifier.notify_admins(
                "quote_expired",
                "Quote expired",
                f"Quote {quote.quote_number} expired before acceptance; case {case.case_number} was cancelled.",
                action_url=f"/cases/{case.id}",
                metadata={"case_id": str(case.id), "quote_id": str(quote.id)},
            )
        raise ExpiredError("Quote has expired")

    logger.info(f"Quote {quote.quote_number} accepted by client {principal.profile_id}")
    if notifier is not None:
        await notifier.notify_admins(
            "quote_accepted",
            "Quote accepted",
            f"Quote {quote.quote_number} for case {case.case_number} was accepted.",
            action_url=f"/cases/{case.id}",
            metadata={"case_id": str(case.id), "quote_id": str(quote.id)},
        )
    return quote


async def reject_quote(
    db: AsyncSession,
    principal: Principal,
    quote_id: UUID,
    reason: str,
    request_revision: bool = True,
    notifier=None,
) -> CaseQuote:
    """
    Reject an open quote. Without a revision request the case is cancelled.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required", errors={"rejection_reason": "Reason is required"})

    async with atomic(db):
        quote = await _load_quote(db, quote_id)
        case = await case_workflow.load_case(db, quote.case_id, for_update=True)
        authorize(principal, "quote.reject", case.client_profile_id)

        if quote.is_accepted:
            raise InvalidStateError("Cannot reject an accepted quote")
        if quote.is_rejected:
            raise InvalidStateError("Quote has already been rejected")

        now = utcnow()
        quote.is_rejected = True
        quote.rejected_at = now
        quote.rejection_reason = reason
        quote.updated_at = now

        target = CaseStatus.quote_rejected if request_revision else CaseStatus.cancelled
        case_workflow.workflow_transition(
            db, case, target, principal, f"Quote {quote.quote_number} rejected: {reason}"
        )

    logger.info(f"Quote {quote.quote_number} rejected by client {principal.profile_id} (revision={request_revision})")
    if notifier is not None:
        await notifier.notify_admins(
            "quote_rejected",
            "Quote rejected",
            f"Quote {quote.quote_number} for case {case.case_number} was rejected: {reason}",
            action_url=f"/cases/{case.id}",
            metadata={"case_id": str(case.id), "quote_id": str(quote.id), "request_revision": request_revision},
        )
    return quote


async def revise_quote(
    db: AsyncSession,
    principal: Principal,
    quote_id: UUID,
    quote_in: QuoteRevise,
    notifier=None,
) -> CaseQuote:
    """
    Reprice a rejected quote and send it again. Fees left out keep their values.
    """
    authorize(principal, "quote.revise")

    async with atomic(db):
        quote = await _load_quote(db, quote_id)
        case = await case_workflow.load_case(db, quote.case_id, for_update=True)

        if not quote.is_rejected:
            raise InvalidStateError("Only rejected quotes can be revised")

        data = quote_in.model_dump(exclude_unset=True)
        for field in ("study_fee", "design_fee", "production_fee", "delivery_fee"):
            if data.get(field) is not None:
                setattr(quote, field, to_decimal(data[field]))
        if data.get("vat_rate") is not None:
            quote.vat_rate = round2(data["vat_rate"])
        for field in ("notes", "internal_notes", "discount_reason"):
            if field in data:
                setattr(quote, field, data[field])

        fees = fees_of(quote)
        if quote.discount_code_id is not None:
            discount_code = await discount_crud.get_discount_code(db, quote.discount_code_id)
            discount = calculate_discount(discount_code, fees.discountable) if discount_code else 0
            if discount_code is None:
                quote.discount_code_id = None
                quote.discount_code = None
        elif data.get("discount_amount") is not None:
            discount = data["discount_amount"]
        else:
            discount = quote.discount_amount
        if to_decimal(discount) > fees.total:
            raise ValidationError(
                "Discount cannot exceed the quoted fees",
                errors={"discount_amount": "Must not exceed the sum of fees"},
            )
        apply_totals(quote, compute_totals(fees, quote.vat_rate, discount))

        now = utcnow()
        quote.valid_until = data.get("valid_until") or now + timedelta(days=settings.QUOTE_VALIDITY_DAYS)
        quote.is_rejected = False
        quote.rejected_at = None
        quote.rejection_reason = None
        quote.is_sent = True
        quote.sent_at = now
        quote.updated_at = now

        case_workflow.workflow_transition(
            db, case, CaseStatus.quote_sent, principal, f"Quote {quote.quote_number} revised"
        )

    logger.info(f"Quote {quote.quote_number} revised by admin {principal.profile_id}: total {quote.total_amount}")
    if notifier is not None:
        await notifier.notify_client(
            case,
            "quote_revised",
            "Quote revised",
            f"Your quote for case {case.case_number} was revised: {quote.total_amount} {settings.CURRENCY}.",
            metadata={"quote_id": str(quote.id)},
        )
    return quote


async def get_quote(db: AsyncSession, principal: Principal, quote_id: UUID) -> CaseQuote:
    quote = await _load_quote(db, quote_id, for_update=False)
    authorize(principal, "quote.read", quote.case.client_profile_id)
    return quote


async def list_case_quotes(db: AsyncSession, principal: Principal, case_id: UUID) -> List[CaseQuote]:
    case = await case_workflow.load_case(db, case_id)
    authorize(principal, "quote.read", case.client_profile_id)
    return await quote_crud.get_case_quotes(db, case.id)
