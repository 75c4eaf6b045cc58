"""
Test suite for OrderStateMachine.

Covers the transition table, edge guards, the stock and commission side
effects, and replay idempotency.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from quickcart.database.base import utcnow
from quickcart.database.models import OrderStatusHistory
from quickcart.services.orders.enums import (
    OrderStatus,
    validate_order_status_transition,
)
from quickcart.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def inventory_service() -> AsyncMock:
    """Inventory service double recording stock restorations."""
    return AsyncMock()


@pytest.fixture
def payout_service() -> AsyncMock:
    """Payout service double recording commission accruals."""
    return AsyncMock()


@pytest.fixture
def state_machine(mock_session, inventory_service, payout_service) -> OrderStateMachine:
    return OrderStateMachine(
        mock_session,
        inventory_service=inventory_service,
        payout_service=payout_service,
    )


# ============================================================================
# Transition Table
# ============================================================================


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.PENDING, OrderStatus.OUT_FOR_DELIVERY),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.REJECTED),
        ],
    )
    def test_allowed(self, current, target):
        assert validate_order_status_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.DELIVERED),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.PENDING),
            (OrderStatus.REJECTED, OrderStatus.CANCELLED),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CONFIRMED),
        ],
    )
    def test_forbidden(self, current, target):
        assert not validate_order_status_transition(current, target)

    def test_terminal_statuses_have_no_transitions(self, state_machine, make_order):
        for status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REJECTED):
            assert state_machine.get_allowed_transitions(make_order(status=status)) == set()

    def test_from_string(self):
        assert OrderStatus.from_string("OUT_FOR_DELIVERY") == OrderStatus.OUT_FOR_DELIVERY
        with pytest.raises(ValueError):
            OrderStatus.from_string("shipped")


# ============================================================================
# Cancellation
# ============================================================================


class TestCancellation:
    """Stock comes back exactly once."""

    @pytest.mark.asyncio
    async def test_cancel_restores_stock(
        self, state_machine, inventory_service, mock_session, make_order
    ):
        order = make_order()
        actor_id = uuid.uuid4()

        changed = await state_machine.apply_transition(
            order, OrderStatus.CANCELLED, changed_by=actor_id, reason="Changed my mind"
        )

        assert changed is True
        assert order.status == OrderStatus.CANCELLED
        inventory_service.restore_order_stock.assert_awaited_once_with(order)
        mock_session.flush.assert_awaited_once()

        history = mock_session.add.call_args.args[0]
        assert isinstance(history, OrderStatusHistory)
        assert history.from_status == OrderStatus.PENDING
        assert history.to_status == OrderStatus.CANCELLED
        assert history.changed_by == actor_id

    @pytest.mark.asyncio
    async def test_repeated_cancel_is_noop(
        self, state_machine, inventory_service, mock_session, make_order
    ):
        order = make_order()

        assert await state_machine.apply_transition(order, OrderStatus.CANCELLED)
        assert not await state_machine.apply_transition(order, OrderStatus.CANCELLED)

        inventory_service.restore_order_stock.assert_awaited_once()
        assert mock_session.add.call_count == 1

    @pytest.mark.asyncio
    async def test_reject_restores_stock(self, state_machine, inventory_service, make_order):
        order = make_order(status=OrderStatus.CONFIRMED)

        await state_machine.apply_transition(order, OrderStatus.REJECTED)

        inventory_service.restore_order_stock.assert_awaited_once_with(order)

    @pytest.mark.asyncio
    async def test_cannot_cancel_delivered_order(
        self, state_machine, inventory_service, mock_session, make_order
    ):
        order = make_order(status=OrderStatus.DELIVERED)

        with pytest.raises(StateTransitionError) as exc_info:
            await state_machine.apply_transition(order, OrderStatus.CANCELLED)

        assert exc_info.value.current_state == OrderStatus.DELIVERED
        assert exc_info.value.context["allowed_transitions"] == []
        assert order.status == OrderStatus.DELIVERED
        inventory_service.restore_order_stock.assert_not_awaited()
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_side_effect_failure_rolls_back(
        self, state_machine, inventory_service, mock_session, make_order
    ):
        inventory_service.restore_order_stock.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await state_machine.apply_transition(make_order(), OrderStatus.CANCELLED)

        mock_session.rollback.assert_awaited_once()
        mock_session.flush.assert_not_awaited()


# ============================================================================
# Guards
# ============================================================================


class TestGuards:
    """Pickup needs a courier and delivery needs customer confirmation."""

    @pytest.mark.asyncio
    async def test_out_for_delivery_requires_courier(self, state_machine, make_order):
        order = make_order()

        with pytest.raises(StateTransitionError) as exc_info:
            await state_machine.apply_transition(order, OrderStatus.OUT_FOR_DELIVERY)

        assert exc_info.value.context["guard_failed"] is True

    @pytest.mark.asyncio
    async def test_out_for_delivery_with_courier(self, state_machine, make_order):
        order = make_order(courier_id=uuid.uuid4())

        assert await state_machine.apply_transition(order, OrderStatus.OUT_FOR_DELIVERY)
        assert order.status == OrderStatus.OUT_FOR_DELIVERY

    @pytest.mark.asyncio
    async def test_admin_override_skips_guard(self, state_machine, make_order):
        order = make_order()

        assert await state_machine.apply_transition(
            order, OrderStatus.OUT_FOR_DELIVERY, admin_override=True
        )

    def test_admin_override_does_not_skip_table(self, state_machine, make_order):
        with pytest.raises(StateTransitionError):
            state_machine.validate_transition(
                make_order(), OrderStatus.DELIVERED, admin_override=True
            )

    @pytest.mark.asyncio
    async def test_delivered_requires_customer_confirmation(
        self, state_machine, payout_service, make_order
    ):
        order = make_order(status=OrderStatus.OUT_FOR_DELIVERY, courier_id=uuid.uuid4())
        order.assignment.marked_delivered_at = utcnow()

        with pytest.raises(StateTransitionError):
            await state_machine.apply_transition(order, OrderStatus.DELIVERED)

        payout_service.accrue_commissions.assert_not_awaited()


# ============================================================================
# Delivery Commissions
# ============================================================================


class TestDeliveredSideEffect:
    @pytest.mark.asyncio
    async def test_confirmed_delivery_accrues_commissions(
        self, state_machine, payout_service, make_order
    ):
        courier_id = uuid.uuid4()
        order = make_order(status=OrderStatus.OUT_FOR_DELIVERY, courier_id=courier_id)
        order.assignment.user_confirmed_at = utcnow()

        assert await state_machine.apply_transition(order, OrderStatus.DELIVERED)

        payout_service.accrue_commissions.assert_awaited_once_with(order, courier_id)

    @pytest.mark.asyncio
    async def test_admin_delivery_without_courier(
        self, state_machine, payout_service, make_order
    ):
        order = make_order(status=OrderStatus.OUT_FOR_DELIVERY)

        await state_machine.apply_transition(
            order, OrderStatus.DELIVERED, admin_override=True
        )

        payout_service.accrue_commissions.assert_awaited_once_with(order, None)

    @pytest.mark.asyncio
    async def test_replayed_delivery_pays_once(
        self, state_machine, payout_service, make_order
    ):
        order = make_order(status=OrderStatus.OUT_FOR_DELIVERY, courier_id=uuid.uuid4())
        order.assignment.user_confirmed_at = utcnow()

        await state_machine.apply_transition(order, OrderStatus.DELIVERED)
        await state_machine.apply_transition(order, OrderStatus.DELIVERED)

        payout_service.accrue_commissions.assert_awaited_once()
