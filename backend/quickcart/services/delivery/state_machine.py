"""
Delivery handshake state machine.

A courier's claim that an order was delivered does not complete the order.
The customer has to confirm it first, and only the confirmation moves the
order to DELIVERED and pays commission. If the customer rejects the claim,
the assignment is flagged for staff review and nothing else changes.

Like the order state machine, this one keeps a guard table and a side-effect
table keyed by action. Repeating an action that has already taken effect
returns False without touching anything.
"""

import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.base import utcnow
from quickcart.database.models import DeliveryAssignment
from quickcart.services.delivery.enums import (
    DELIVERY_TRANSITIONS,
    DeliveryAction,
    DeliveryState,
    get_allowed_delivery_actions,
)
from quickcart.services.orders.enums import OrderStatus
from quickcart.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
)

logger = get_logger(__name__)

Guard = Callable[[DeliveryAssignment], bool]
SideEffect = Callable[[DeliveryAssignment, Optional[uuid.UUID], dict[str, Any]], Awaitable[None]]

# States in which an action has already taken effect.
_ALREADY_APPLIED: Dict[DeliveryAction, Set[DeliveryState]] = {
    DeliveryAction.PICK_UP: {
        DeliveryState.PICKED_UP,
        DeliveryState.MARKED_DELIVERED,
        DeliveryState.CONFIRMED,
        DeliveryState.REJECTED,
    },
    DeliveryAction.MARK_DELIVERED: {
        DeliveryState.MARKED_DELIVERED,
        DeliveryState.CONFIRMED,
    },
    DeliveryAction.CONFIRM: {DeliveryState.CONFIRMED},
    DeliveryAction.REJECT: {DeliveryState.REJECTED},
}


class DeliveryStateMachine:
    """
    Drives a delivery assignment through the pickup and confirmation
    handshake.
    """

    def __init__(
        self,
        session: AsyncSession,
        order_state_machine: Optional[OrderStateMachine] = None,
    ):
        self.session = session
        self.order_state_machine = order_state_machine or OrderStateMachine(session)
        self._transition_guards: Dict[DeliveryAction, Guard] = {
            DeliveryAction.ASSIGN: self._guard_order_open,
            DeliveryAction.PICK_UP: self._guard_order_awaiting_pickup,
            DeliveryAction.MARK_DELIVERED: self._guard_order_out_for_delivery,
            DeliveryAction.CONFIRM: self._guard_order_out_for_delivery,
            DeliveryAction.REJECT: self._guard_order_open,
        }
        self._side_effects: Dict[DeliveryAction, SideEffect] = {
            DeliveryAction.ASSIGN: self._effect_assign,
            DeliveryAction.PICK_UP: self._effect_picked_up,
            DeliveryAction.MARK_DELIVERED: self._effect_marked_delivered,
            DeliveryAction.CONFIRM: self._effect_confirmed,
            DeliveryAction.REJECT: self._effect_rejected,
        }

    def validate_action(
        self, assignment: DeliveryAssignment, action: DeliveryAction
    ) -> DeliveryState:
        """
        Check that ``action`` is allowed and return the resulting state.

        Raises:
            StateTransitionError: If the state or the order forbids it
        """
        state = assignment.state
        target = DELIVERY_TRANSITIONS[action].get(state)
        if target is None:
            raise StateTransitionError(
                f"Cannot {action.value.replace('_', ' ')} a delivery that is "
                f"{state.display_name.lower()}",
                current_state=state,
                target_state=action,
                allowed_actions=sorted(a.value for a in get_allowed_delivery_actions(state)),
            )

        guard = self._transition_guards.get(action)
        if guard is not None and not guard(assignment):
            raise StateTransitionError(
                f"Order status does not allow {action.value.replace('_', ' ')}",
                current_state=state,
                target_state=action,
                order_status=assignment.order.status.value,
                guard_failed=True,
            )
        return target

    async def apply(
        self,
        assignment: DeliveryAssignment,
        action: DeliveryAction,
        actor_id: Optional[uuid.UUID] = None,
        **details: Any,
    ) -> bool:
        """
        Perform ``action`` on ``assignment``.

        Args:
            assignment: Assignment with its order loaded
            action: Action to perform
            actor_id: User performing it, recorded in order history
            **details: Action arguments (``courier_id`` for ASSIGN,
                ``reason`` for REJECT)

        Returns:
            True if the assignment changed, False if the action had already
            been applied

        Raises:
            StateTransitionError: If the action is not allowed now
        """
        state = assignment.state
        if state in _ALREADY_APPLIED.get(action, set()):
            logger.info(
                "Delivery action already applied",
                assignment_id=str(assignment.id),
                action=action.value,
                state=state.value,
            )
            return False

        target = self.validate_action(assignment, action)
        await self._side_effects[action](assignment, actor_id, details)
        await self.session.flush()

        logger.info(
            "Delivery transition applied",
            assignment_id=str(assignment.id),
            order_id=str(assignment.order_id),
            transition=f"{state.value}->{target.value}",
            action=action.value,
        )
        return True

    # Guards

    def _guard_order_open(self, assignment: DeliveryAssignment) -> bool:
        return not assignment.order.status.is_terminal()

    def _guard_order_awaiting_pickup(self, assignment: DeliveryAssignment) -> bool:
        return assignment.order.status in {
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.OUT_FOR_DELIVERY,
        }

    def _guard_order_out_for_delivery(self, assignment: DeliveryAssignment) -> bool:
        return assignment.order.status == OrderStatus.OUT_FOR_DELIVERY

    # Side effects

    async def _effect_assign(
        self,
        assignment: DeliveryAssignment,
        actor_id: Optional[uuid.UUID],
        details: dict[str, Any],
    ) -> None:
        assignment.delivery_person_id = details["courier_id"]
        assignment.assigned_at = utcnow()

    async def _effect_picked_up(
        self,
        assignment: DeliveryAssignment,
        actor_id: Optional[uuid.UUID],
        details: dict[str, Any],
    ) -> None:
        assignment.picked_up_at = utcnow()
        await self.order_state_machine.apply_transition(
            assignment.order,
            OrderStatus.OUT_FOR_DELIVERY,
            changed_by=actor_id,
            reason="Picked up by courier",
        )

    async def _effect_marked_delivered(
        self,
        assignment: DeliveryAssignment,
        actor_id: Optional[uuid.UUID],
        details: dict[str, Any],
    ) -> None:
        assignment.marked_delivered_at = utcnow()
        assignment.is_rejected = False
        assignment.rejection_reason = None

    async def _effect_confirmed(
        self,
        assignment: DeliveryAssignment,
        actor_id: Optional[uuid.UUID],
        details: dict[str, Any],
    ) -> None:
        assignment.user_confirmed_at = utcnow()
        await self.order_state_machine.apply_transition(
            assignment.order,
            OrderStatus.DELIVERED,
            changed_by=actor_id,
            reason="Delivery confirmed by customer",
        )

    async def _effect_rejected(
        self,
        assignment: DeliveryAssignment,
        actor_id: Optional[uuid.UUID],
        details: dict[str, Any],
    ) -> None:
        assignment.is_rejected = True
        assignment.rejection_reason = details.get("reason")
