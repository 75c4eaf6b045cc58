"""
Order service for everything after placement.

This module implements the OrderService class: reading orders on behalf of
customers, couriers and staff, cancelling, staff status updates through the
order state machine, and the total integrity check that flags orders whose
stored total does not match their items.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.config import Settings, get_settings
from quickcart.core.logging import get_logger
from quickcart.database.models import Order
from quickcart.services.authorization.policy import (
    Action,
    Actor,
    AuthorizationError,
    Policy,
    Resource,
    get_policy,
)
from quickcart.services.orders.enums import OrderStatus
from quickcart.services.orders.pricing import compute_subtotal, compute_total
from quickcart.services.orders.repository import OrderRepository
from quickcart.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)

PRICE_MANIPULATION = "price_manipulation"


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


def order_resource(order: Order) -> Resource:
    """How ``order`` relates to its customer and courier."""
    assignment = order.assignment
    return Resource(
        owner_id=order.user_id,
        assignee_id=assignment.delivery_person_id if assignment is not None else None,
    )


class OrderService:
    """
    Order reads, cancellation and staff status changes.

    Attributes:
        repository: Order repository for data access
        state_machine: State machine for order lifecycle management
        policy: Authorization policy
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        policy: Optional[Policy] = None,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repository = OrderRepository(session)
        self.state_machine = state_machine or OrderStateMachine(session)
        self.policy = policy or get_policy()

    async def get_order(self, actor: Actor, order_id: uuid.UUID) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order does not exist
            AuthorizationError: If the actor is not the customer, the
                assigned courier or staff
        """
        order = await self.repository.get_order(order_id)
        self.policy.authorize(actor, Action.VIEW_ORDER, order_resource(order))
        return order

    async def list_orders(
        self, actor: Actor, limit: int = 20, offset: int = 0
    ) -> list[Order]:
        return await self.repository.list_user_orders(actor.id, limit=limit, offset=offset)

    async def cancel_order(
        self,
        actor: Actor,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order and put its stock back.

        Customers may cancel their own order while it is still pending.
        Staff may cancel from any non-terminal status. Cancelling an order
        that is already cancelled changes nothing.

        Args:
            actor: Customer or staff member
            order_id: Order to cancel
            reason: Free text reason stored in the status history

        Returns:
            The cancelled order

        Raises:
            OrderNotFoundError: If the order does not exist
            AuthorizationError: If the actor may not cancel it
            StateTransitionError: If the order can no longer be cancelled
        """
        order = await self.repository.get_order(order_id, for_update=True)
        self.policy.authorize(actor, Action.CANCEL_ORDER, order_resource(order))

        if (
            not actor.is_staff
            and order.status != OrderStatus.CANCELLED
            and not order.status.customer_can_cancel()
        ):
            raise AuthorizationError(
                "Orders can only be cancelled while pending",
                order_id=str(order_id),
                status=order.status.value,
            )

        changed = await self.state_machine.apply_transition(
            order,
            OrderStatus.CANCELLED,
            changed_by=actor.id,
            reason=reason or "Cancelled",
            details={"role": actor.role.value},
        )
        if changed:
            await self.session.commit()
            logger.info(
                "Order cancelled",
                order_id=str(order_id),
                cancelled_by=str(actor.id),
                role=actor.role.value,
            )
        return order

    async def update_status(
        self,
        actor: Actor,
        order_id: uuid.UUID,
        status: OrderStatus,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Staff status change. Edge guards are overridden; the transition table
        and the side effects still apply.
        """
        order = await self.repository.get_order(order_id, for_update=True)
        self.policy.authorize(actor, Action.UPDATE_ORDER_STATUS, order_resource(order))

        changed = await self.state_machine.apply_transition(
            order,
            status,
            changed_by=actor.id,
            reason=reason,
            admin_override=True,
            details={"role": actor.role.value},
        )
        if changed:
            await self.session.commit()
        return order

    async def verify_order_total(self, order_id: uuid.UUID) -> bool:
        """
        Recompute an order's total from its items and compare.

        A difference above ``price_tolerance`` is recorded as a
        ``price_manipulation`` security event.

        Returns:
            True if the stored total is consistent
        """
        order = await self.repository.get_order(order_id)
        subtotal = compute_subtotal((item.price, item.quantity) for item in order.items)
        expected = compute_total(subtotal, order.discount_amount, order.delivery_fee)
        difference = abs(Decimal(order.total_amount) - expected)

        if difference <= self.settings.price_tolerance:
            return True

        details = {
            "order_id": str(order.id),
            "stored_total": str(order.total_amount),
            "expected_total": str(expected),
            "difference": str(difference),
        }
        await self.repository.record_security_event(
            order.user_id, PRICE_MANIPULATION, details
        )
        await self.session.commit()
        logger.warning("Order total mismatch", user_id=str(order.user_id), **details)
        return False
