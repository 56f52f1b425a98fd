"""
Quote and discount arithmetic.

All amounts are ``Decimal``. Stored fields are rounded half-up to two places,
once, at the point they are produced; intermediate values keep full precision.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 70.5 exact instead of their binary expansion
    return Decimal(str(value))


def round2(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    study_fee: Decimal = ZERO
    design_fee: Decimal = ZERO
    production_fee: Decimal = ZERO
    delivery_fee: Decimal = ZERO

    @classmethod
    def of(cls, study_fee: Number = 0, design_fee: Number = 0,
           production_fee: Number = 0, delivery_fee: Number = 0) -> "FeeBreakdown":
        return cls(
            study_fee=to_decimal(study_fee),
            design_fee=to_decimal(design_fee),
            production_fee=to_decimal(production_fee),
            delivery_fee=to_decimal(delivery_fee),
        )

    @property
    def total(self) -> Decimal:
        return self.study_fee + self.design_fee + self.production_fee + self.delivery_fee

    @property
    def discountable(self) -> Decimal:
        """Base a discount code applies to. The study fee is never discounted."""
        return self.design_fee + self.production_fee + self.delivery_fee


@dataclass(frozen=True)
class QuoteTotals:
    subtotal: Decimal
    discount_amount: Decimal
    vat_amount: Decimal
    total_amount: Decimal


def compute_totals(fees: FeeBreakdown, vat_rate: Number, discount_amount: Number = 0) -> QuoteTotals:
    """
    subtotal = fees - discount, vat = subtotal * rate / 100, total = subtotal + vat.

    >>> t = compute_totals(FeeBreakdown.of(100, 50, 300, 20), 15)
    >>> (t.subtotal, t.vat_amount, t.total_amount)
    (Decimal('470.00'), Decimal('70.50'), Decimal('540.50'))
    """
    discount = round2(discount_amount)
    subtotal = fees.total - discount
    vat = subtotal * to_decimal(vat_rate) / HUNDRED
    return QuoteTotals(
        subtotal=round2(subtotal),
        discount_amount=discount,
        vat_amount=round2(vat),
        total_amount=round2(subtotal + vat),
    )


def calculate_discount(discount_type: str, discount_value: Number, order_amount: Number,
                       max_discount_amount: Optional[Number] = None) -> Decimal:
    """
    Discount for ``order_amount``: a percentage (optionally capped) or a fixed
    value, never more than the order itself.
    """
    order = to_decimal(order_amount)
    value = to_decimal(discount_value)

    if getattr(discount_type, "value", discount_type) == "percentage":
        amount = order * value / HUNDRED
        if max_discount_amount is not None:
            cap = to_decimal(max_discount_amount)
            if cap > ZERO and amount > cap:
                amount = cap
    else:
        amount = value

    if amount > order:
        amount = order
    if amount < ZERO:
        amount = ZERO

    return round2(amount)
