"""Discount preview calculation.

The engine does not price orders; callers use this to show the discount a
coupon would grant before committing a redemption with their own amounts.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from coupon_engine.models.coupon import Coupon, DiscountType

CENTS = Decimal("0.01")


@dataclass
class DiscountCalculation:
    """Result of a coupon discount calculation."""

    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    discount_percentage: Decimal
    max_discount_reached: bool = False


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_discount(
    discount_type: DiscountType,
    discount_value: Decimal,
    order_amount: Decimal,
    max_discount_amount: Decimal | None = None,
) -> DiscountCalculation:
    """Percentage discounts are capped by ``max_discount_amount``; fixed ones by the order."""
    max_reached = False
    if discount_type == DiscountType.PERCENTAGE:
        discount = order_amount * discount_value / Decimal("100")
        if max_discount_amount is not None and discount > max_discount_amount:
            discount = max_discount_amount
            max_reached = True
    else:
        discount = min(discount_value, order_amount)

    discount = _quantize(discount)
    final_amount = max(Decimal("0"), _quantize(order_amount) - discount)
    percentage = (
        _quantize(discount / order_amount * Decimal("100")) if order_amount > 0 else Decimal("0")
    )
    return DiscountCalculation(
        original_amount=_quantize(order_amount),
        discount_amount=discount,
        final_amount=final_amount,
        discount_percentage=percentage,
        max_discount_reached=max_reached,
    )


def calculate_coupon_discount(coupon: Coupon, order_amount: Decimal) -> DiscountCalculation:
    return calculate_discount(
        DiscountType(coupon.discount_type),
        Decimal(coupon.discount_value),
        order_amount,
        Decimal(coupon.max_discount_amount) if coupon.max_discount_amount is not None else None,
    )
