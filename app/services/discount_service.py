"""
Discount codes: validation, pricing, application to quotes and usage recording.
"""

import logging
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.exceptions import (
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.policy import authorize
from app.crud import discount as discount_crud
from app.crud import quote as quote_crud
from app.db.models import CaseQuote, DiscountCode, DiscountType, DiscountUsage
from app.schemas.auth import Principal
from app.schemas.discount import DiscountCodeCreate, DiscountCodeUpdate
from app.services.pricing import FeeBreakdown, QuoteTotals, calculate_discount as price_discount, compute_totals, to_decimal
from app.utils.dates import ensure_aware, utcnow

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,20}$")


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def fees_of(quote: CaseQuote) -> FeeBreakdown:
    return FeeBreakdown.of(quote.study_fee, quote.design_fee, quote.production_fee, quote.delivery_fee)


def calculate_discount(discount_code: DiscountCode, order_amount) -> Decimal:
    """
    Discount ``discount_code`` gives on ``order_amount``.
    """
    return price_discount(
        discount_code.discount_type,
        discount_code.discount_value,
        order_amount,
        discount_code.max_discount_amount,
    )


async def validate_discount_code(
    db: AsyncSession,
    code: str,
    client_profile_id: UUID,
    order_amount,
) -> DiscountCode:
    """
    Check a code for ``client_profile_id`` against ``order_amount``.

    Checks run in a fixed order and the first failure is raised:
    existence, active flag, validity window, minimum order, total uses,
    uses by this client.
    """
    discount_code = await discount_crud.get_discount_code_by_code(db, normalize_code(code))
    if discount_code is None:
        raise NotFoundError("Invalid discount code", code="not_found")

    if not discount_code.is_active:
        raise InvalidStateError("This discount code is no longer active", code="inactive")

    now = utcnow()
    if now < ensure_aware(discount_code.valid_from):
        raise InvalidStateError("This discount code is not yet valid", code="not_yet_valid")
    if now > ensure_aware(discount_code.valid_until):
        raise ExpiredError("This discount code has expired", code="expired")

    minimum = to_decimal(discount_code.min_order_amount)
    if to_decimal(order_amount) < minimum:
        raise ValidationError(
            f"Minimum order amount is {minimum}",
            code="min_order",
            errors={"order_amount": f"Must be at least {minimum}"},
        )

    if discount_code.max_uses_total is not None and discount_code.times_used >= discount_code.max_uses_total:
        raise InvalidStateError("This discount code has reached its usage limit", code="usage_limit")

    if discount_code.max_uses_per_client is not None:
        used = await discount_crud.count_client_usages(db, discount_code.id, client_profile_id)
        if used >= discount_code.max_uses_per_client:
            raise InvalidStateError("You have already used this discount code", code="client_usage_limit")

    return discount_code


async def record_discount_usage(
    db: AsyncSession,
    discount_code: DiscountCode,
    quote: CaseQuote,
    client_profile_id: UUID,
) -> DiscountUsage:
    """
    Insert the usage row and bump ``times_used`` in the caller's transaction.

    The counter only moves while the code is under ``max_uses_total``; when the
    cap has been reached by someone else first, ConflictError is raised and the
    caller's transaction must roll back.
    """
    if not await discount_crud.increment_times_used(db, discount_code.id):
        logger.warning(f"Discount code {discount_code.code} hit its usage cap while accepting quote {quote.quote_number}")
        raise ConflictError("This discount code has reached its usage limit", code="usage_limit")
    await db.refresh(discount_code, ["times_used"])

    original = fees_of(quote).discountable
    usage = DiscountUsage(
        discount_code_id=discount_code.id,
        client_profile_id=client_profile_id,
        case_id=quote.case_id,
        quote_id=quote.id,
        original_amount=original,
        discount_amount=to_decimal(quote.discount_amount),
        final_amount=original - to_decimal(quote.discount_amount),
        applied_at=utcnow(),
    )
    db.add(usage)
    logger.info(f"Recorded usage of discount code {discount_code.code} on quote {quote.quote_number}")
    return usage


def apply_totals(quote: CaseQuote, totals: QuoteTotals) -> None:
    quote.subtotal = totals.subtotal
    quote.discount_amount = totals.discount_amount
    quote.vat_amount = totals.vat_amount
    quote.total_amount = totals.total_amount


async def _load_quote(db: AsyncSession, principal: Principal, quote_id: UUID, action: str) -> CaseQuote:
    quote = await quote_crud.get_quote_for_update(db, quote_id)
    if quote is None:
        raise NotFoundError("Quote not found")
    authorize(principal, action, quote.case.client_profile_id)
    return quote


async def preview_discount(db: AsyncSession, principal: Principal, quote_id: UUID, code: str) -> Dict[str, Any]:
    """
    What ``code`` would do to a quote, without changing anything.
    """
    quote = await quote_crud.get_quote(db, quote_id)
    if quote is None:
        raise NotFoundError("Quote not found")
    authorize(principal, "discount.validate", quote.case.client_profile_id)

    fees = fees_of(quote)
    discount_code = await validate_discount_code(db, code, quote.case.client_profile_id, fees.discountable)
    amount = calculate_discount(discount_code, fees.discountable)
    totals = compute_totals(fees, quote.vat_rate, amount)
    return {
        "code": discount_code.code,
        "discount_type": discount_code.discount_type,
        "discount_value": discount_code.discount_value,
        "discountable_amount": fees.discountable,
        "discount_amount": totals.discount_amount,
        "subtotal": totals.subtotal,
        "vat_amount": totals.vat_amount,
        "total_amount": totals.total_amount,
    }


async def apply_discount_code(db: AsyncSession, principal: Principal, quote_id: UUID, code: str) -> CaseQuote:
    """
    Attach a code to an open quote and reprice it. The study fee is never discounted.
    """
    async with atomic(db):
        quote = await _load_quote(db, principal, quote_id, "discount.apply")

        if quote.is_accepted:
            raise InvalidStateError("Cannot apply a discount to an accepted quote")
        if quote.is_rejected:
            raise InvalidStateError("Cannot apply a discount to a rejected quote")
        if quote.discount_code_id is not None or to_decimal(quote.discount_amount) > 0:
            raise InvalidStateError("A discount is already applied to this quote")

        fees = fees_of(quote)
        discount_code = await validate_discount_code(db, code, quote.case.client_profile_id, fees.discountable)
        amount = calculate_discount(discount_code, fees.discountable)

        apply_totals(quote, compute_totals(fees, quote.vat_rate, amount))
        quote.discount_code_id = discount_code.id
        quote.discount_code = discount_code
        quote.discount_reason = f"Discount code: {discount_code.code}"
        quote.updated_at = utcnow()

    logger.info(f"Discount code {discount_code.code} applied to quote {quote.quote_number}: -{quote.discount_amount}")
    return quote


async def remove_discount_code(db: AsyncSession, principal: Principal, quote_id: UUID) -> CaseQuote:
    async with atomic(db):
        quote = await _load_quote(db, principal, quote_id, "discount.remove")

        if quote.is_accepted:
            raise InvalidStateError("Cannot remove a discount from an accepted quote")
        if quote.discount_code_id is None:
            raise InvalidStateError("No discount code is applied to this quote")

        apply_totals(quote, compute_totals(fees_of(quote), quote.vat_rate, 0))
        quote.discount_code_id = None
        quote.discount_code = None
        quote.discount_reason = None
        quote.updated_at = utcnow()

    logger.info(f"Discount code removed from quote {quote.quote_number}")
    return quote


# Admin management

def _validate_code_rules(
    discount_type: DiscountType,
    discount_value,
    max_discount_amount=None,
    valid_from=None,
    valid_until=None,
) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if discount_type == DiscountType.percentage and to_decimal(discount_value) > 100:
        errors["discount_value"] = "Percentage discount cannot exceed 100"
    if discount_type == DiscountType.fixed and max_discount_amount is not None:
        errors["max_discount_amount"] = "Maximum discount only applies to percentage codes"
    if valid_from is not None and valid_until is not None and ensure_aware(valid_until) <= ensure_aware(valid_from):
        errors["valid_until"] = "Valid until must be after valid from"
    return errors


async def create_discount_code(db: AsyncSession, principal: Principal, code_in: DiscountCodeCreate) -> DiscountCode:
    authorize(principal, "discount_code.manage")

    code = normalize_code(code_in.code)
    errors = {}
    if not CODE_PATTERN.match(code):
        errors["code"] = "Code must be 3-20 letters or digits"
    errors.update(_validate_code_rules(
        code_in.discount_type, code_in.discount_value, code_in.max_discount_amount,
        code_in.valid_from, code_in.valid_until,
    ))
    if errors:
        raise ValidationError("Invalid discount code", errors=errors)

    try:
        async with atomic(db):
            if await discount_crud.get_discount_code_by_code(db, code) is not None:
                raise ConflictError(f"Discount code {code} already exists", code="duplicate")

            discount_code = DiscountCode(
                code=code,
                created_by_id=principal.profile_id,
                **code_in.model_dump(exclude={"code"}),
            )
            db.add(discount_code)
    except IntegrityError:
        # A concurrent create won the unique index
        raise ConflictError(f"Discount code {code} already exists", code="duplicate")

    logger.info(f"Discount code {code} created by admin {principal.profile_id}")
    return discount_code


async def get_discount_code(db: AsyncSession, principal: Principal, discount_code_id: UUID) -> Tuple[DiscountCode, Dict[str, Any]]:
    """
    A code plus aggregate statistics over its recorded usages.
    """
    authorize(principal, "discount_code.manage")
    discount_code = await discount_crud.get_discount_code(db, discount_code_id)
    if discount_code is None:
        raise NotFoundError("Discount code not found")
    stats = await discount_crud.get_usage_stats(db, discount_code.id)
    return discount_code, stats


async def list_discount_codes(
    db: AsyncSession,
    principal: Principal,
    page: int = 1,
    limit: int = 20,
    is_active: Optional[bool] = None,
    discount_type: Optional[DiscountType] = None,
    search: Optional[str] = None,
) -> Tuple[List[DiscountCode], int]:
    authorize(principal, "discount_code.manage")
    filters = {"is_active": is_active, "discount_type": discount_type, "search": search}
    return await discount_crud.get_discount_codes(db, skip=(page - 1) * limit, limit=limit, filters=filters)


async def update_discount_code(
    db: AsyncSession,
    principal: Principal,
    discount_code_id: UUID,
    code_in: DiscountCodeUpdate,
) -> DiscountCode:
    authorize(principal, "discount_code.manage")

    async with atomic(db):
        discount_code = await discount_crud.get_discount_code(db, discount_code_id)
        if discount_code is None:
            raise NotFoundError("Discount code not found")

        data = code_in.model_dump(exclude_unset=True)
        errors = _validate_code_rules(
            discount_code.discount_type,
            data.get("discount_value", discount_code.discount_value),
            data.get("max_discount_amount", discount_code.max_discount_amount),
            data.get("valid_from", discount_code.valid_from),
            data.get("valid_until", discount_code.valid_until),
        )
        max_total = data.get("max_uses_total")
        if max_total is not None and max_total < discount_code.times_used:
            errors["max_uses_total"] = f"Code has already been used {discount_code.times_used} times"
        if errors:
            raise ValidationError("Invalid discount code", errors=errors)

        for field, value in data.items():
            setattr(discount_code, field, value)
        discount_code.updated_at = utcnow()

    logger.info(f"Discount code {discount_code.code} updated by admin {principal.profile_id}")
    return discount_code


async def delete_discount_code(db: AsyncSession, principal: Principal, discount_code_id: UUID) -> None:
    """
    Soft delete and deactivate. Recorded usages are kept.
    """
    authorize(principal, "discount_code.manage")

    async with atomic(db):
        discount_code = await discount_crud.get_discount_code(db, discount_code_id)
        if discount_code is None:
            raise NotFoundError("Discount code not found")
        discount_code.is_active = False
        discount_code.deleted_at = utcnow()

    logger.info(f"Discount code {discount_code.code} deleted by admin {principal.profile_id}")
