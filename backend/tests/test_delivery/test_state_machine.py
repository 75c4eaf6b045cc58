"""
Tests for the delivery handshake state machine.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from quickcart.database.base import utcnow
from quickcart.services.delivery.enums import (
    DeliveryAction,
    DeliveryState,
    get_allowed_delivery_actions,
)
from quickcart.services.delivery.state_machine import DeliveryStateMachine
from quickcart.services.orders.enums import OrderStatus
from quickcart.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def payout_service() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def delivery_machine(mock_session, payout_service) -> DeliveryStateMachine:
    """Delivery state machine over a real order state machine."""
    order_machine = OrderStateMachine(
        mock_session, inventory_service=AsyncMock(), payout_service=payout_service
    )
    return DeliveryStateMachine(mock_session, order_machine)


@pytest.fixture
def assigned(make_order):
    """An order with a courier assigned, returned as its assignment."""
    order = make_order(courier_id=uuid.uuid4())
    return order.assignment


@pytest.fixture
def claimed(assigned):
    """A picked up delivery the courier has marked delivered."""
    assigned.order.status = OrderStatus.OUT_FOR_DELIVERY
    _advance(assigned, "picked_up_at", "marked_delivered_at")
    return assigned


def _advance(assignment, *fields: str) -> None:
    for name in fields:
        setattr(assignment, name, utcnow())


# ============================================================================
# Derived State
# ============================================================================


class TestDerivedState:
    def test_states_follow_timestamps(self, assigned):
        assert assigned.state == DeliveryState.ASSIGNED

        _advance(assigned, "picked_up_at")
        assert assigned.state == DeliveryState.PICKED_UP

        _advance(assigned, "marked_delivered_at")
        assert assigned.state == DeliveryState.MARKED_DELIVERED

        assigned.is_rejected = True
        assert assigned.state == DeliveryState.REJECTED

        _advance(assigned, "user_confirmed_at")
        assert assigned.state == DeliveryState.CONFIRMED

    def test_unassigned(self, assigned):
        assigned.delivery_person_id = None
        assert assigned.state == DeliveryState.UNASSIGNED

    def test_allowed_actions(self):
        assert get_allowed_delivery_actions(DeliveryState.MARKED_DELIVERED) == {
            DeliveryAction.CONFIRM,
            DeliveryAction.REJECT,
        }
        assert get_allowed_delivery_actions(DeliveryState.CONFIRMED) == set()


# ============================================================================
# Handshake
# ============================================================================


class TestPickUp:
    @pytest.mark.asyncio
    async def test_pick_up_moves_order_out_for_delivery(self, delivery_machine, assigned):
        courier_id = assigned.delivery_person_id

        changed = await delivery_machine.apply(
            assigned, DeliveryAction.PICK_UP, actor_id=courier_id
        )

        assert changed is True
        assert assigned.picked_up_at is not None
        assert assigned.state == DeliveryState.PICKED_UP
        assert assigned.order.status == OrderStatus.OUT_FOR_DELIVERY

    @pytest.mark.asyncio
    async def test_repeated_pick_up_is_noop(self, delivery_machine, assigned):
        await delivery_machine.apply(assigned, DeliveryAction.PICK_UP)
        first_pickup = assigned.picked_up_at

        assert await delivery_machine.apply(assigned, DeliveryAction.PICK_UP) is False
        assert assigned.picked_up_at == first_pickup

    @pytest.mark.asyncio
    async def test_cannot_pick_up_cancelled_order(self, delivery_machine, assigned):
        assigned.order.status = OrderStatus.CANCELLED

        with pytest.raises(StateTransitionError) as exc_info:
            await delivery_machine.apply(assigned, DeliveryAction.PICK_UP)

        assert exc_info.value.context["guard_failed"] is True
        assert assigned.picked_up_at is None


class TestMarkDelivered:
    @pytest.mark.asyncio
    async def test_mark_delivered_keeps_order_status(self, delivery_machine, assigned):
        await delivery_machine.apply(assigned, DeliveryAction.PICK_UP)

        await delivery_machine.apply(assigned, DeliveryAction.MARK_DELIVERED)

        assert assigned.state == DeliveryState.MARKED_DELIVERED
        assert assigned.order.status == OrderStatus.OUT_FOR_DELIVERY

    @pytest.mark.asyncio
    async def test_cannot_mark_delivered_before_pick_up(self, delivery_machine, assigned):
        with pytest.raises(StateTransitionError) as exc_info:
            await delivery_machine.apply(assigned, DeliveryAction.MARK_DELIVERED)

        assert exc_info.value.current_state == DeliveryState.ASSIGNED
        assert exc_info.value.context["allowed_actions"] == ["assign", "pick_up"]


class TestCustomerResponse:
    """Only the customer's confirmation completes the order."""

    @pytest.mark.asyncio
    async def test_confirm_delivers_and_pays(self, delivery_machine, payout_service, claimed):
        assert await delivery_machine.apply(claimed, DeliveryAction.CONFIRM)

        assert claimed.state == DeliveryState.CONFIRMED
        assert claimed.order.status == OrderStatus.DELIVERED
        payout_service.accrue_commissions.assert_awaited_once_with(
            claimed.order, claimed.delivery_person_id
        )

    @pytest.mark.asyncio
    async def test_repeated_confirm_pays_once(self, delivery_machine, payout_service, claimed):
        await delivery_machine.apply(claimed, DeliveryAction.CONFIRM)

        assert await delivery_machine.apply(claimed, DeliveryAction.CONFIRM) is False
        payout_service.accrue_commissions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reject_flags_without_changing_order(
        self, delivery_machine, payout_service, claimed
    ):
        assert await delivery_machine.apply(
            claimed, DeliveryAction.REJECT, reason="Nothing arrived"
        )

        assert claimed.state == DeliveryState.REJECTED
        assert claimed.rejection_reason == "Nothing arrived"
        assert claimed.order.status == OrderStatus.OUT_FOR_DELIVERY
        payout_service.accrue_commissions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redelivery_after_rejection(self, delivery_machine, claimed):
        await delivery_machine.apply(claimed, DeliveryAction.REJECT, reason="Wrong door")

        await delivery_machine.apply(claimed, DeliveryAction.MARK_DELIVERED)

        assert claimed.state == DeliveryState.MARKED_DELIVERED
        assert claimed.is_rejected is False
        assert claimed.rejection_reason is None

    @pytest.mark.asyncio
    async def test_confirm_before_claim_fails(self, delivery_machine, assigned):
        with pytest.raises(StateTransitionError):
            await delivery_machine.apply(assigned, DeliveryAction.CONFIRM)


class TestReassign:
    @pytest.mark.asyncio
    async def test_reassign_before_pick_up(self, delivery_machine, assigned):
        new_courier = uuid.uuid4()

        assert await delivery_machine.apply(
            assigned, DeliveryAction.ASSIGN, courier_id=new_courier
        )
        assert assigned.delivery_person_id == new_courier

    @pytest.mark.asyncio
    async def test_cannot_reassign_after_pick_up(self, delivery_machine, assigned):
        await delivery_machine.apply(assigned, DeliveryAction.PICK_UP)

        with pytest.raises(StateTransitionError):
            await delivery_machine.apply(
                assigned, DeliveryAction.ASSIGN, courier_id=uuid.uuid4()
            )
