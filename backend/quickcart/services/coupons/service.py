"""
Coupon validation service.

``validate_coupon`` answers the cart's "apply coupon" request. The discount
it returns is advisory: placement calls ``revalidate_for_placement`` again
inside its transaction and charges only what that returns.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.base import utcnow
from quickcart.database.models import Coupon
from quickcart.services.coupons.repository import CouponRepository
from quickcart.services.coupons.validator import CouponEvaluation, evaluate_coupon

logger = get_logger(__name__)

REASON_CODE_REQUIRED = "Coupon code is required"
REASON_INVALID_SUBTOTAL = "Invalid order subtotal"
REASON_UNKNOWN_CODE = "Invalid or inactive coupon code"
REASON_USER_REQUIRED = "User authentication required"


@dataclass(frozen=True)
class CouponValidation:
    """
    Response of the validate-coupon contract.
    """

    valid: bool
    coupon_id: Optional[uuid.UUID] = None
    code: Optional[str] = None
    discount: Decimal = Decimal("0.00")
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    description: Optional[str] = None
    error: Optional[str] = None


class CouponService:
    """
    Coupon lookups combined with the pure evaluator.
    """

    def __init__(self, session: AsyncSession):
        self.repository = CouponRepository(session)

    async def validate_coupon(
        self,
        user_id: Optional[uuid.UUID],
        code: Optional[str],
        subtotal: Decimal,
        now: Optional[datetime] = None,
    ) -> CouponValidation:
        """
        Check a code typed by the customer against their current subtotal.

        Args:
            user_id: Customer applying the coupon
            code: Code as typed, case-insensitive
            subtotal: Cart subtotal before discount and delivery fee
            now: Evaluation time, defaults to the current time

        Returns:
            CouponValidation carrying either the discount or the reason
        """
        if user_id is None:
            return CouponValidation(valid=False, error=REASON_USER_REQUIRED)
        if not code or not code.strip():
            return CouponValidation(valid=False, error=REASON_CODE_REQUIRED)
        if subtotal is None or subtotal <= 0:
            return CouponValidation(valid=False, error=REASON_INVALID_SUBTOTAL)

        coupon = await self.repository.get_active_by_code(code)
        if coupon is None:
            logger.info("Unknown coupon code", user_id=str(user_id))
            return CouponValidation(valid=False, error=REASON_UNKNOWN_CODE)

        already_used = await self.repository.has_usage(user_id, coupon.id)
        evaluation = evaluate_coupon(coupon, already_used, subtotal, now or utcnow())

        logger.info(
            "Coupon validated",
            user_id=str(user_id),
            coupon_id=str(coupon.id),
            valid=evaluation.valid,
            reason=evaluation.reason,
        )

        if not evaluation.valid:
            return CouponValidation(
                valid=False, coupon_id=coupon.id, code=coupon.code, error=evaluation.reason
            )

        return CouponValidation(
            valid=True,
            coupon_id=coupon.id,
            code=coupon.code,
            discount=evaluation.discount,
            discount_type=coupon.discount_type.value,
            discount_value=coupon.discount_value,
            description=coupon.description,
        )

    async def revalidate_for_placement(
        self,
        user_id: uuid.UUID,
        coupon_id: uuid.UUID,
        subtotal: Decimal,
        now: Optional[datetime] = None,
    ) -> tuple[Optional[Coupon], CouponEvaluation]:
        """
        Authoritative re-check used inside the placement transaction.

        Locks the coupon row, so it must run in the same session as the
        order insert.

        Returns:
            The locked coupon (None if it does not exist) and its evaluation
        """
        coupon = await self.repository.get_for_update(coupon_id)
        if coupon is None:
            return None, CouponEvaluation(valid=False, reason=REASON_UNKNOWN_CODE)

        already_used = await self.repository.has_usage(user_id, coupon.id)
        return coupon, evaluate_coupon(coupon, already_used, subtotal, now or utcnow())
