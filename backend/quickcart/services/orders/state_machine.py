"""
Order status state machine.

Status changes are validated against ``ORDER_STATUS_TRANSITIONS``, then
checked by an optional guard for the specific edge, then applied together
with the side-effect handler registered for the target status. Handlers run
in the caller's transaction. Each one checks the status the order had
*before* the change, so replaying an event cannot restore stock or pay
commission twice.
"""

import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import Order
from quickcart.services.inventory.service import InventoryService
from quickcart.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from quickcart.services.orders.repository import OrderRepository
from quickcart.services.payouts.service import PayoutService

logger = get_logger(__name__)

Guard = Callable[[Order, bool], bool]
SideEffect = Callable[[Order, OrderStatus], Awaitable[None]]


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_state: Any,
        target_state: Any,
        **context: Any,
    ):
        super().__init__(message)
        self.current_state = current_state
        self.target_state = target_state
        self.context = context


class OrderStateMachine:
    """
    Applies order status transitions with guards and side effects.
    """

    def __init__(
        self,
        session: AsyncSession,
        inventory_service: Optional[InventoryService] = None,
        payout_service: Optional[PayoutService] = None,
    ):
        self.session = session
        self.repository = OrderRepository(session)
        self.inventory_service = inventory_service or InventoryService(session)
        self.payout_service = payout_service or PayoutService(session)
        self._transition_guards: Dict[
            tuple[OrderStatus, OrderStatus], Guard
        ] = self._initialize_guards()
        self._side_effects: Dict[OrderStatus, SideEffect] = self._initialize_side_effects()

    def _initialize_guards(self) -> Dict[tuple[OrderStatus, OrderStatus], Guard]:
        return {
            (OrderStatus.PENDING, OrderStatus.OUT_FOR_DELIVERY): self._guard_courier_assigned,
            (OrderStatus.CONFIRMED, OrderStatus.OUT_FOR_DELIVERY): self._guard_courier_assigned,
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED): self._guard_delivery_confirmed,
        }

    def _initialize_side_effects(self) -> Dict[OrderStatus, SideEffect]:
        return {
            OrderStatus.CANCELLED: self._effect_restore_stock,
            OrderStatus.REJECTED: self._effect_restore_stock,
            OrderStatus.DELIVERED: self._effect_accrue_commissions,
        }

    def validate_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        admin_override: bool = False,
    ) -> bool:
        """
        Check that ``order`` may move to ``target_status``.

        Args:
            order: Order to check
            target_status: Requested status
            admin_override: Staff action that bypasses edge guards. The
                transition table itself is never bypassed.

        Returns:
            True if the transition is valid

        Raises:
            StateTransitionError: If the table or a guard rejects it
        """
        current_status = order.status

        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            raise StateTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_state=current_status,
                target_state=target_status,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        guard = self._transition_guards.get((current_status, target_status))
        if guard is not None and not guard(order, admin_override):
            raise StateTransitionError(
                f"Transition guard failed for {current_status.value} -> "
                f"{target_status.value}",
                current_state=current_status,
                target_state=target_status,
                guard_failed=True,
            )

        return True

    async def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        changed_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
        admin_override: bool = False,
        details: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        Move ``order`` to ``target_status`` and run its side effect.

        Re-applying the status the order already has is a no-op. Nothing is
        committed here; on failure the session is rolled back and the error
        re-raised.

        Returns:
            True if the status changed, False for a no-op replay

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        previous_status = order.status

        if previous_status == target_status:
            logger.info(
                "Order already in requested status",
                order_id=str(order.id),
                status=target_status.value,
            )
            return False

        try:
            self.validate_transition(order, target_status, admin_override)

            order.status = target_status
            self.repository.add_status_history(
                order,
                previous_status,
                target_status,
                changed_by,
                reason,
                details,
            )

            side_effect = self._side_effects.get(target_status)
            if side_effect is not None:
                await side_effect(order, previous_status)

            await self.session.flush()
        except Exception as e:
            await self.session.rollback()
            logger.warning(
                "Order transition failed",
                order_id=str(order.id),
                transition=f"{previous_status.value}->{target_status.value}",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "Order transition applied",
            order_id=str(order.id),
            transition=f"{previous_status.value}->{target_status.value}",
            changed_by=str(changed_by) if changed_by else None,
        )
        return True

    def get_allowed_transitions(self, order: Order) -> Set[OrderStatus]:
        return get_allowed_order_transitions(order.status)

    # Transition guards

    def _guard_courier_assigned(self, order: Order, admin_override: bool) -> bool:
        """An order only leaves the store with a courier attached."""
        if admin_override:
            return True
        assignment = order.assignment
        return assignment is not None and assignment.delivery_person_id is not None

    def _guard_delivery_confirmed(self, order: Order, admin_override: bool) -> bool:
        """
        DELIVERED requires the customer's confirmation of the courier's
        delivery claim, unless staff resolve it manually.
        """
        if admin_override:
            return True
        assignment = order.assignment
        return assignment is not None and assignment.user_confirmed_at is not None

    # Side effects

    async def _effect_restore_stock(
        self, order: Order, previous_status: OrderStatus
    ) -> None:
        if previous_status.is_cancellation():
            logger.info(
                "Stock already restored for order",
                order_id=str(order.id),
                previous_status=previous_status.value,
            )
            return
        await self.inventory_service.restore_order_stock(order)

    async def _effect_accrue_commissions(
        self, order: Order, previous_status: OrderStatus
    ) -> None:
        if previous_status == OrderStatus.DELIVERED:
            return
        assignment = order.assignment
        courier_id = assignment.delivery_person_id if assignment is not None else None
        await self.payout_service.accrue_commissions(order, courier_id)
