"""
Payout ledger model.

A payout moves commission from a payer to a payee. A NULL party means the
platform itself. Resolution is only done by the receiving side.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Numeric,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from quickcart.database.base import BaseModel, enum_values
from quickcart.services.payouts.enums import PayoutStatus, PayoutType


class Payout(BaseModel):
    """
    Commission payout.

    Accrued payouts carry ``order_id``; the partial unique index on
    (order_id, type) keeps accrual idempotent if a delivery confirmation is
    replayed.
    """

    __tablename__ = "payouts"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payouts_amount_positive"),
        Index(
            "uq_payouts_order_type",
            "order_id",
            "type",
            unique=True,
            postgresql_where=text("order_id IS NOT NULL"),
        ),
        Index("ix_payouts_payee_status", "payee_id", "status"),
    )

    payer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    payee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    type: Mapped[PayoutType] = mapped_column(
        SQLEnum(PayoutType, name="payout_type", values_callable=enum_values),
        nullable=False,
    )
    status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus, name="payout_status", values_callable=enum_values),
        nullable=False,
        default=PayoutStatus.PENDING,
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
