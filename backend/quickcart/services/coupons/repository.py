"""
Coupon data access.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import Coupon, CouponUsage

logger = get_logger(__name__)


class CouponRepositoryError(Exception):
    """Base exception for coupon repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class CouponRepository:
    """
    Lookup of coupons and their redemptions.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_by_code(self, code: str) -> Optional[Coupon]:
        """
        Find an active coupon by code, ignoring case and surrounding spaces.
        """
        try:
            result = await self.session.execute(
                select(Coupon).where(
                    func.lower(Coupon.code) == code.strip().lower(),
                    Coupon.is_active.is_(True),
                )
            )
        except SQLAlchemyError as e:
            logger.error("Coupon lookup failed", error=str(e))
            raise CouponRepositoryError("Coupon lookup failed") from e
        return result.scalar_one_or_none()

    async def get_for_update(self, coupon_id: uuid.UUID) -> Optional[Coupon]:
        """
        Load a coupon and lock its row.

        Placement holds this lock until commit so that two checkouts by the
        same user cannot both count zero prior redemptions.
        """
        result = await self.session.execute(
            select(Coupon).where(Coupon.id == coupon_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def has_usage(self, user_id: uuid.UUID, coupon_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(func.count(CouponUsage.id)).where(
                CouponUsage.user_id == user_id,
                CouponUsage.coupon_id == coupon_id,
            )
        )
        return (result.scalar_one() or 0) > 0

    async def record_usage(
        self,
        user_id: uuid.UUID,
        coupon_id: uuid.UUID,
        order_id: Optional[uuid.UUID],
    ) -> CouponUsage:
        usage = CouponUsage(user_id=user_id, coupon_id=coupon_id, order_id=order_id)
        self.session.add(usage)
        await self.session.flush()

        logger.info(
            "Coupon usage recorded",
            user_id=str(user_id),
            coupon_id=str(coupon_id),
            order_id=str(order_id) if order_id else None,
        )
        return usage
