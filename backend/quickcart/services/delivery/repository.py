"""
Delivery assignment and activation data access.
"""

import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import (
    DeliveryActivation,
    DeliveryAssignment,
    Order,
    User,
    UserRole,
)
from quickcart.services.delivery.enums import ActivationStatus
from quickcart.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class DeliveryRepositoryError(Exception):
    """Base exception for delivery repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class AssignmentNotFoundError(DeliveryRepositoryError):
    """Raised when an assignment does not exist."""

    pass


class ActivationNotFoundError(DeliveryRepositoryError):
    """Raised when an activation request does not exist."""

    pass


class DeliveryRepository:
    """
    Repository for delivery assignments and courier activations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def eligible_courier_ids(self, today: date, now: datetime) -> list[uuid.UUID]:
        """
        Couriers who may receive orders right now.

        A courier is eligible when their account is active, their role is
        delivery, and they hold an approved activation for ``today`` that has
        not run past ``approved_until``.
        """
        try:
            result = await self.session.execute(
                select(User.id)
                .join(
                    DeliveryActivation,
                    DeliveryActivation.delivery_partner_id == User.id,
                )
                .where(
                    User.role == UserRole.DELIVERY,
                    User.is_active.is_(True),
                    DeliveryActivation.activation_date == today,
                    DeliveryActivation.status == ActivationStatus.APPROVED,
                    or_(
                        DeliveryActivation.approved_until.is_(None),
                        DeliveryActivation.approved_until > now,
                    ),
                )
            )
        except SQLAlchemyError as e:
            logger.error("Eligibility query failed", error=str(e))
            raise DeliveryRepositoryError("Eligibility query failed") from e
        return list(result.scalars().all())

    async def is_courier(self, user_id: uuid.UUID) -> bool:
        user = await self.session.get(User, user_id)
        return user is not None and user.is_active and user.role == UserRole.DELIVERY

    async def get_assignment(
        self, assignment_id: uuid.UUID, for_update: bool = False
    ) -> DeliveryAssignment:
        """
        Raises:
            AssignmentNotFoundError: If it does not exist
        """
        stmt = select(DeliveryAssignment).where(DeliveryAssignment.id == assignment_id)
        if for_update:
            stmt = stmt.with_for_update(of=DeliveryAssignment)
        result = await self.session.execute(stmt)
        assignment = result.scalar_one_or_none()
        if assignment is None:
            raise AssignmentNotFoundError(
                "Delivery assignment not found", assignment_id=str(assignment_id)
            )
        return assignment

    async def get_assignment_by_order(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[DeliveryAssignment]:
        stmt = select(DeliveryAssignment).where(DeliveryAssignment.order_id == order_id)
        if for_update:
            stmt = stmt.with_for_update(of=DeliveryAssignment)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_assignment(
        self,
        order: Order,
        courier_id: uuid.UUID,
        assigned_at: datetime,
    ) -> DeliveryAssignment:
        assignment = DeliveryAssignment(
            order=order,
            order_id=order.id,
            delivery_person_id=courier_id,
            assigned_at=assigned_at,
            is_rejected=False,
        )
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def list_courier_assignments(
        self, courier_id: uuid.UUID, include_completed: bool = False
    ) -> list[DeliveryAssignment]:
        stmt = select(DeliveryAssignment).where(
            DeliveryAssignment.delivery_person_id == courier_id
        )
        if not include_completed:
            stmt = stmt.where(DeliveryAssignment.user_confirmed_at.is_(None))
        result = await self.session.execute(stmt.order_by(DeliveryAssignment.assigned_at))
        return list(result.scalars().all())

    async def list_disputes(self) -> list[DeliveryAssignment]:
        """Assignments whose delivery the customer rejected, oldest first."""
        result = await self.session.execute(
            select(DeliveryAssignment)
            .where(
                DeliveryAssignment.is_rejected.is_(True),
                DeliveryAssignment.user_confirmed_at.is_(None),
            )
            .order_by(DeliveryAssignment.marked_delivered_at)
        )
        return list(result.scalars().all())

    async def pending_unassigned_orders(self, limit: int) -> list[Order]:
        """
        Oldest pending orders without a courier, locked and skipping rows
        another transaction is already assigning.
        """
        result = await self.session.execute(
            select(Order)
            .outerjoin(DeliveryAssignment, DeliveryAssignment.order_id == Order.id)
            .where(
                Order.status == OrderStatus.PENDING,
                or_(
                    DeliveryAssignment.id.is_(None),
                    DeliveryAssignment.delivery_person_id.is_(None),
                ),
            )
            .order_by(Order.created_at)
            .limit(limit)
            .with_for_update(of=Order, skip_locked=True)
        )
        return list(result.scalars().all())

    async def get_activation(
        self, partner_id: uuid.UUID, activation_date: date
    ) -> Optional[DeliveryActivation]:
        result = await self.session.execute(
            select(DeliveryActivation).where(
                DeliveryActivation.delivery_partner_id == partner_id,
                DeliveryActivation.activation_date == activation_date,
            )
        )
        return result.scalar_one_or_none()

    async def get_activation_by_id(
        self, activation_id: uuid.UUID, for_update: bool = False
    ) -> DeliveryActivation:
        stmt = select(DeliveryActivation).where(DeliveryActivation.id == activation_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        activation = result.scalar_one_or_none()
        if activation is None:
            raise ActivationNotFoundError(
                "Activation request not found", activation_id=str(activation_id)
            )
        return activation

    async def create_activation(
        self,
        partner_id: uuid.UUID,
        activation_date: date,
        duration_hours: int,
    ) -> DeliveryActivation:
        activation = DeliveryActivation(
            delivery_partner_id=partner_id,
            activation_date=activation_date,
            status=ActivationStatus.PENDING,
            duration_hours=duration_hours,
        )
        self.session.add(activation)
        await self.session.flush()
        return activation
