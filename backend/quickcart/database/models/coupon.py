"""
Coupon and coupon redemption models.

Coupon codes are unique regardless of case. Redemptions are recorded only by
a successful order placement; a non-stackable coupon may be redeemed once per
user no matter what later happens to that order.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from quickcart.database.base import BaseModel, enum_values


class DiscountType(str, Enum):
    """How ``discount_value`` is interpreted."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def from_string(cls, value: str) -> "DiscountType":
        """
        Parse a discount type, accepting the legacy ``fixed_amount`` spelling.

        Raises:
            ValueError: If value is not a known discount type
        """
        normalized = value.lower()
        if normalized == "fixed_amount":
            normalized = cls.FIXED.value
        try:
            return cls(normalized)
        except ValueError as e:
            raise ValueError(
                f"Invalid discount type: {value}. "
                f"Must be one of: {', '.join(t.value for t in cls)}"
            ) from e


class Coupon(BaseModel):
    """
    Discount code.

    Attributes:
        code: Code typed by the customer, matched case-insensitively
        description: Shown next to the applied discount
        discount_type: Percentage of subtotal or fixed amount
        discount_value: Percentage (0-100] or currency amount
        min_order_amount: Subtotal required before the coupon applies
        maximum_discount: Optional cap on the computed discount
        valid_from: Start of validity window
        valid_until: Optional end of validity window
        is_active: Admin kill switch
        is_stackable: Stackable coupons may be redeemed repeatedly by a user
    """

    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_value > 0", name="ck_coupons_discount_value_positive"),
        CheckConstraint(
            "min_order_amount >= 0", name="ck_coupons_min_order_non_negative"
        ),
        CheckConstraint(
            "maximum_discount IS NULL OR maximum_discount > 0",
            name="ck_coupons_maximum_discount_positive",
        ),
        CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name="ck_coupons_percentage_max_100",
        ),
        Index("uq_coupons_code_lower", func.lower(text("code")), unique=True),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(
        SQLEnum(DiscountType, name="discount_type", values_callable=enum_values),
        nullable=False,
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    min_order_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    maximum_discount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    valid_from: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    valid_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_stackable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def is_within_window(self, now: datetime) -> bool:
        """
        Check the validity window. Open ended on either side when unset.
        """
        if self.valid_from is not None and now < self.valid_from:
            return False
        if self.valid_until is not None and now > self.valid_until:
            return False
        return True


class CouponUsage(BaseModel):
    """
    Record of one coupon redemption, linked to the order that redeemed it.
    """

    __tablename__ = "coupon_usage"
    __table_args__ = (
        Index("ix_coupon_usage_user_coupon", "user_id", "coupon_id"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
