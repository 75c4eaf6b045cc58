"""
Delivery assignment and courier activation models.
"""

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickcart.database.base import BaseModel, enum_values
from quickcart.services.delivery.enums import ActivationStatus, DeliveryState

if TYPE_CHECKING:
    from quickcart.database.models.order import Order


class DeliveryAssignment(BaseModel):
    """
    Binds one order to one courier for its lifetime.

    The handshake state is not stored; it is derived from which timestamps
    are set (see ``state``).
    """

    __tablename__ = "delivery_assignments"

    order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    delivery_person_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    marked_delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    user_confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_rejected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship(
        "Order", back_populates="assignment", lazy="selectin"
    )

    @property
    def state(self) -> DeliveryState:
        if self.user_confirmed_at is not None:
            return DeliveryState.CONFIRMED
        if self.is_rejected:
            return DeliveryState.REJECTED
        if self.marked_delivered_at is not None:
            return DeliveryState.MARKED_DELIVERED
        if self.picked_up_at is not None:
            return DeliveryState.PICKED_UP
        if self.delivery_person_id is not None:
            return DeliveryState.ASSIGNED
        return DeliveryState.UNASSIGNED


class DeliveryActivation(BaseModel):
    """
    A courier's request to take orders on a given day.

    Only approved activations whose ``approved_until`` has not passed make a
    courier eligible for auto-assignment.
    """

    __tablename__ = "delivery_activations"
    __table_args__ = (
        UniqueConstraint(
            "delivery_partner_id",
            "activation_date",
            name="uq_delivery_activations_partner_date",
        ),
    )

    delivery_partner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activation_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[ActivationStatus] = mapped_column(
        SQLEnum(ActivationStatus, name="activation_status", values_callable=enum_values),
        nullable=False,
        default=ActivationStatus.PENDING,
    )
    admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approved_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
