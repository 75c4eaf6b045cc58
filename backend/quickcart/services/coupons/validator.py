"""
Pure coupon evaluation.

``evaluate_coupon`` decides eligibility and the discount from the coupon row,
whether the user already redeemed it, and the subtotal. It performs no I/O,
so the same function backs the advisory check shown in the cart and the
authoritative re-check inside the placement transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from quickcart.database.models.coupon import Coupon, DiscountType

CENT = Decimal("0.01")

REASON_EXPIRED = "This coupon has expired or is inactive"
REASON_ALREADY_USED = "You have already used this coupon"


@dataclass(frozen=True)
class CouponEvaluation:
    """
    Outcome of evaluating a coupon against a subtotal.

    Attributes:
        valid: Whether the coupon applies
        discount: Discount amount, zero when invalid
        reason: Customer facing reason when invalid
        shortfall: Amount missing to reach the minimum order, if that failed
    """

    valid: bool
    discount: Decimal = Decimal("0.00")
    reason: Optional[str] = None
    shortfall: Optional[Decimal] = None


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """
    Discount for ``subtotal`` ignoring eligibility.

    Percentage coupons take value% of the subtotal, fixed coupons take their
    value. The result is capped at ``maximum_discount`` when set and never
    exceeds the subtotal.
    """
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * value / Decimal("100")
    else:
        discount = value

    if coupon.maximum_discount is not None:
        discount = min(discount, Decimal(coupon.maximum_discount))

    return quantize_money(min(discount, subtotal))


def evaluate_coupon(
    coupon: Coupon,
    already_used: bool,
    subtotal: Decimal,
    now: datetime,
) -> CouponEvaluation:
    """
    Decide whether ``coupon`` applies to ``subtotal`` for a user.

    Checks run in order: active and inside its validity window, minimum
    order reached, not already redeemed unless stackable.

    Args:
        coupon: Coupon row
        already_used: Whether the user has any prior redemption of it
        subtotal: Freshly computed cart subtotal
        now: Evaluation time, timezone aware

    Returns:
        CouponEvaluation with the discount or the reason it does not apply
    """
    if not coupon.is_active or not coupon.is_within_window(now):
        return CouponEvaluation(valid=False, reason=REASON_EXPIRED)

    minimum = Decimal(coupon.min_order_amount or 0)
    if subtotal < minimum:
        shortfall = quantize_money(minimum - subtotal)
        return CouponEvaluation(
            valid=False,
            reason=(
                f"Minimum order not met: ₹{quantize_money(minimum)} required, "
                f"add ₹{shortfall} more"
            ),
            shortfall=shortfall,
        )

    if already_used and not coupon.is_stackable:
        return CouponEvaluation(valid=False, reason=REASON_ALREADY_USED)

    return CouponEvaluation(valid=True, discount=compute_discount(coupon, subtotal))
