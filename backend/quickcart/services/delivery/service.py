"""
Delivery service.

Couriers are picked from an eligibility query and bound to orders here,
and the courier and customer actions of the delivery handshake go through
``DeliveryStateMachine``. Each public action commits its own transaction,
except ``auto_assign``, which runs inside the placement transaction.
"""

import uuid
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.config import Settings, get_settings
from quickcart.core.logging import get_logger
from quickcart.database.base import utcnow
from quickcart.database.models import DeliveryActivation, DeliveryAssignment, Order
from quickcart.services.authorization.policy import (
    Action,
    Actor,
    Policy,
    Resource,
    get_policy,
)
from quickcart.services.delivery.enums import ActivationStatus, DeliveryAction
from quickcart.services.delivery.repository import (
    AssignmentNotFoundError,
    DeliveryRepository,
)
from quickcart.services.delivery.selection import CourierSelector
from quickcart.services.delivery.state_machine import DeliveryStateMachine
from quickcart.services.orders.repository import OrderRepository
from quickcart.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
)

logger = get_logger(__name__)


class DeliveryServiceError(Exception):
    """Base exception for delivery service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class CourierNotEligibleError(DeliveryServiceError):
    """Raised when assigning an order to someone who is not an active courier."""

    pass


class ActivationStateError(DeliveryServiceError):
    """Raised when resolving an activation that is no longer pending."""

    pass


class DeliveryService:
    """
    Service for courier assignment, the delivery handshake and courier
    activations.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        selector: Optional[CourierSelector] = None,
        policy: Optional[Policy] = None,
        order_state_machine: Optional[OrderStateMachine] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repository = DeliveryRepository(session)
        self.orders = OrderRepository(session)
        self.selector = selector or CourierSelector(
            seed=self.settings.courier_selection_seed
        )
        self.policy = policy or get_policy()
        self.state_machine = DeliveryStateMachine(
            session, order_state_machine or OrderStateMachine(session)
        )

    async def auto_assign(self, order: Order) -> Optional[uuid.UUID]:
        """
        Bind ``order`` to a randomly chosen eligible courier.

        Runs in the caller's transaction and does not commit. Finding nobody
        is not an error; the order stays open for manual assignment.

        Returns:
            The chosen courier id, or None
        """
        now = utcnow()
        candidates = await self.repository.eligible_courier_ids(now.date(), now)
        courier_id = self.selector.choose(candidates)

        if courier_id is None:
            logger.info("No eligible courier for order", order_id=str(order.id))
            return None

        await self.repository.create_assignment(order, courier_id, now)
        logger.info(
            "Courier auto-assigned",
            order_id=str(order.id),
            courier_id=str(courier_id),
            candidate_count=len(candidates),
        )
        return courier_id

    async def assign(
        self, actor: Actor, order_id: uuid.UUID, courier_id: uuid.UUID
    ) -> DeliveryAssignment:
        """
        Assign or reassign a courier by hand.

        Reassignment is only possible until the order has been picked up.

        Raises:
            AuthorizationError: If the actor is not staff
            CourierNotEligibleError: If ``courier_id`` is not an active courier
            OrderNotFoundError: If the order does not exist
            StateTransitionError: If the order or delivery state forbids it
        """
        self.policy.authorize(actor, Action.ASSIGN_COURIER)
        if not await self.repository.is_courier(courier_id):
            raise CourierNotEligibleError(
                "User is not an active courier", courier_id=str(courier_id)
            )

        order = await self.orders.get_order(order_id, for_update=True)
        assignment = await self.repository.get_assignment_by_order(
            order_id, for_update=True
        )

        try:
            if assignment is None:
                if order.status.is_terminal():
                    raise StateTransitionError(
                        f"Cannot assign a courier to a {order.status.value} order",
                        current_state=order.status,
                        target_state=DeliveryAction.ASSIGN,
                    )
                assignment = await self.repository.create_assignment(
                    order, courier_id, utcnow()
                )
            else:
                await self.state_machine.apply(
                    assignment,
                    DeliveryAction.ASSIGN,
                    actor_id=actor.id,
                    courier_id=courier_id,
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Courier assigned manually",
            order_id=str(order_id),
            courier_id=str(courier_id),
            assigned_by=str(actor.id),
        )
        return assignment

    async def pick_up(self, actor: Actor, order_id: uuid.UUID) -> DeliveryAssignment:
        """
        Courier collects the order; the order goes OUT_FOR_DELIVERY.

        Raises:
            AssignmentNotFoundError: If the order has no assignment
            AuthorizationError: If the actor is not the assigned courier
            StateTransitionError: If the delivery is not awaiting pickup
        """
        assignment = await self.repository.get_assignment_by_order(
            order_id, for_update=True
        )
        if assignment is None:
            raise AssignmentNotFoundError(
                "Order has no delivery assignment", order_id=str(order_id)
            )
        self.policy.authorize(
            actor,
            Action.PICK_UP_ORDER,
            Resource(assignee_id=assignment.delivery_person_id),
        )
        await self._apply(assignment, DeliveryAction.PICK_UP, actor)
        return assignment

    async def mark_delivered(
        self, actor: Actor, assignment_id: uuid.UUID
    ) -> DeliveryAssignment:
        """
        Courier claims delivery. Opens the customer confirmation window; the
        order status does not change.
        """
        assignment = await self.repository.get_assignment(assignment_id, for_update=True)
        self.policy.authorize(
            actor,
            Action.MARK_DELIVERED,
            Resource(assignee_id=assignment.delivery_person_id),
        )
        await self._apply(assignment, DeliveryAction.MARK_DELIVERED, actor)
        return assignment

    async def respond_to_delivery(
        self,
        actor: Actor,
        assignment_id: uuid.UUID,
        accepted: bool,
        reason: Optional[str] = None,
    ) -> DeliveryAssignment:
        """
        Customer confirms or disputes the courier's delivery claim.

        Confirmation completes the order and accrues commission. A dispute
        only flags the assignment for staff review.

        Raises:
            AssignmentNotFoundError: If the assignment does not exist
            AuthorizationError: If the actor does not own the order
            StateTransitionError: If there is no delivery claim to answer
        """
        assignment = await self.repository.get_assignment(assignment_id, for_update=True)
        self.policy.authorize(
            actor,
            Action.RESPOND_TO_DELIVERY,
            Resource(owner_id=assignment.order.user_id),
        )
        if accepted:
            await self._apply(assignment, DeliveryAction.CONFIRM, actor)
        else:
            await self._apply(assignment, DeliveryAction.REJECT, actor, reason=reason)
            logger.warning(
                "Delivery disputed by customer",
                assignment_id=str(assignment_id),
                order_id=str(assignment.order_id),
                courier_id=str(assignment.delivery_person_id),
                reason=reason,
            )
        return assignment

    async def dispute_queue(self, actor: Actor) -> list[DeliveryAssignment]:
        self.policy.authorize(actor, Action.VIEW_DISPUTES)
        return await self.repository.list_disputes()

    async def courier_assignments(
        self, actor: Actor, include_completed: bool = False
    ) -> list[DeliveryAssignment]:
        return await self.repository.list_courier_assignments(
            actor.id, include_completed=include_completed
        )

    async def request_activation(self, actor: Actor) -> DeliveryActivation:
        """
        Ask to take orders today. Repeating the request returns the existing
        one.
        """
        self.policy.authorize(
            actor, Action.REQUEST_ACTIVATION, Resource(owner_id=actor.id)
        )
        today = utcnow().date()
        activation = await self.repository.get_activation(actor.id, today)
        if activation is not None:
            return activation

        activation = await self.repository.create_activation(
            actor.id, today, self.settings.activation_duration_hours
        )
        await self.session.commit()
        logger.info(
            "Courier activation requested",
            activation_id=str(activation.id),
            courier_id=str(actor.id),
            activation_date=today.isoformat(),
        )
        return activation

    async def approve_activation(
        self, actor: Actor, activation_id: uuid.UUID
    ) -> tuple[DeliveryActivation, list[uuid.UUID]]:
        """
        Approve a courier for the day and hand them waiting orders.

        Up to ``auto_assign_on_activation_limit`` pending orders without a
        courier are assigned to the newly approved courier, oldest first.

        Returns:
            (activation, ids of the orders assigned)
        """
        self.policy.authorize(actor, Action.RESOLVE_ACTIVATION)
        activation = await self.repository.get_activation_by_id(
            activation_id, for_update=True
        )
        if activation.status == ActivationStatus.APPROVED:
            return activation, []
        self._ensure_pending(activation, ActivationStatus.APPROVED)

        now = utcnow()
        activation.status = ActivationStatus.APPROVED
        activation.admin_id = actor.id
        activation.approved_until = now + timedelta(hours=activation.duration_hours)

        assigned: list[uuid.UUID] = []
        try:
            orders = await self.repository.pending_unassigned_orders(
                self.settings.auto_assign_on_activation_limit
            )
            for order in orders:
                existing = order.assignment
                if existing is None:
                    await self.repository.create_assignment(
                        order, activation.delivery_partner_id, now
                    )
                else:
                    existing.delivery_person_id = activation.delivery_partner_id
                    existing.assigned_at = now
                assigned.append(order.id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Courier activation approved",
            activation_id=str(activation_id),
            courier_id=str(activation.delivery_partner_id),
            approved_until=activation.approved_until.isoformat(),
            orders_assigned=len(assigned),
        )
        return activation, assigned

    async def reject_activation(
        self, actor: Actor, activation_id: uuid.UUID
    ) -> DeliveryActivation:
        self.policy.authorize(actor, Action.RESOLVE_ACTIVATION)
        activation = await self.repository.get_activation_by_id(
            activation_id, for_update=True
        )
        if activation.status == ActivationStatus.REJECTED:
            return activation
        self._ensure_pending(activation, ActivationStatus.REJECTED)

        activation.status = ActivationStatus.REJECTED
        activation.admin_id = actor.id
        await self.session.commit()
        logger.info(
            "Courier activation rejected",
            activation_id=str(activation_id),
            courier_id=str(activation.delivery_partner_id),
        )
        return activation

    def _ensure_pending(
        self, activation: DeliveryActivation, target: ActivationStatus
    ) -> None:
        if activation.status != ActivationStatus.PENDING:
            raise ActivationStateError(
                f"Activation is already {activation.status.value}",
                activation_id=str(activation.id),
                current_status=activation.status.value,
                target_status=target.value,
            )

    async def _apply(
        self,
        assignment: DeliveryAssignment,
        action: DeliveryAction,
        actor: Actor,
        **details: Any,
    ) -> bool:
        try:
            changed = await self.state_machine.apply(
                assignment, action, actor_id=actor.id, **details
            )
            if changed:
                await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return changed
