"""
Tests for DeliveryService: assignment, the courier and customer handshake
actions, and courier activations.
"""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from quickcart.database.base import utcnow
from quickcart.database.models import DeliveryActivation
from quickcart.services.authorization.policy import AuthorizationError
from quickcart.services.delivery.enums import ActivationStatus, DeliveryState
from quickcart.services.delivery.repository import AssignmentNotFoundError
from quickcart.services.delivery.selection import CourierSelector
from quickcart.services.delivery.service import (
    ActivationStateError,
    CourierNotEligibleError,
    DeliveryService,
)
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
def delivery_service(mock_session, settings, payout_service) -> DeliveryService:
    """Delivery service with a mocked repository and a real state machine."""
    order_machine = OrderStateMachine(
        mock_session, inventory_service=AsyncMock(), payout_service=payout_service
    )
    service = DeliveryService(
        mock_session,
        settings=settings,
        selector=CourierSelector(seed=11),
        order_state_machine=order_machine,
    )
    service.repository = AsyncMock()
    service.repository.is_courier.return_value = True
    service.repository.get_assignment_by_order.return_value = None
    service.orders = AsyncMock()
    return service


@pytest.fixture
def make_activation():
    def factory(courier_id: uuid.UUID, status=ActivationStatus.PENDING) -> DeliveryActivation:
        return DeliveryActivation(
            id=uuid.uuid4(),
            delivery_partner_id=courier_id,
            activation_date=utcnow().date(),
            status=status,
            duration_hours=8,
        )

    return factory


# ============================================================================
# Assignment
# ============================================================================


class TestAutoAssign:
    @pytest.mark.asyncio
    async def test_assigns_eligible_courier(self, delivery_service, mock_session, make_order):
        candidates = [uuid.uuid4(), uuid.uuid4()]
        delivery_service.repository.eligible_courier_ids.return_value = candidates
        order = make_order()

        courier_id = await delivery_service.auto_assign(order)

        assert courier_id in candidates
        args = delivery_service.repository.create_assignment.await_args.args
        assert args[0] is order
        assert args[1] == courier_id
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_eligible_courier(self, delivery_service, make_order):
        delivery_service.repository.eligible_courier_ids.return_value = []

        assert await delivery_service.auto_assign(make_order()) is None
        delivery_service.repository.create_assignment.assert_not_awaited()


class TestManualAssign:
    @pytest.mark.asyncio
    async def test_requires_staff(self, delivery_service, customer):
        with pytest.raises(AuthorizationError):
            await delivery_service.assign(customer, uuid.uuid4(), uuid.uuid4())

    @pytest.mark.asyncio
    async def test_rejects_non_courier(self, delivery_service, admin):
        delivery_service.repository.is_courier.return_value = False

        with pytest.raises(CourierNotEligibleError):
            await delivery_service.assign(admin, uuid.uuid4(), uuid.uuid4())

    @pytest.mark.asyncio
    async def test_creates_assignment(self, delivery_service, mock_session, admin, make_order):
        order = make_order()
        courier_id = uuid.uuid4()
        delivery_service.orders.get_order.return_value = order

        await delivery_service.assign(admin, order.id, courier_id)

        delivery_service.repository.create_assignment.assert_awaited_once()
        assert delivery_service.repository.create_assignment.await_args.args[1] == courier_id
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reassigns_before_pickup(self, delivery_service, admin, make_order):
        order = make_order(courier_id=uuid.uuid4())
        new_courier = uuid.uuid4()
        delivery_service.orders.get_order.return_value = order
        delivery_service.repository.get_assignment_by_order.return_value = order.assignment

        assignment = await delivery_service.assign(admin, order.id, new_courier)

        assert assignment.delivery_person_id == new_courier

    @pytest.mark.asyncio
    async def test_terminal_order_cannot_be_assigned(
        self, delivery_service, mock_session, admin, make_order
    ):
        delivery_service.orders.get_order.return_value = make_order(
            status=OrderStatus.CANCELLED
        )

        with pytest.raises(StateTransitionError):
            await delivery_service.assign(admin, uuid.uuid4(), uuid.uuid4())

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()


# ============================================================================
# Handshake
# ============================================================================


class TestPickUp:
    @pytest.mark.asyncio
    async def test_no_assignment(self, delivery_service, courier):
        with pytest.raises(AssignmentNotFoundError):
            await delivery_service.pick_up(courier, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_only_assigned_courier(self, delivery_service, courier, make_order):
        order = make_order(courier_id=uuid.uuid4())
        delivery_service.repository.get_assignment_by_order.return_value = order.assignment

        with pytest.raises(AuthorizationError):
            await delivery_service.pick_up(courier, order.id)

    @pytest.mark.asyncio
    async def test_assigned_courier_picks_up(
        self, delivery_service, mock_session, courier, make_order
    ):
        order = make_order(courier_id=courier.id)
        delivery_service.repository.get_assignment_by_order.return_value = order.assignment

        assignment = await delivery_service.pick_up(courier, order.id)

        assert assignment.state == DeliveryState.PICKED_UP
        assert order.status == OrderStatus.OUT_FOR_DELIVERY
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_repeated_pick_up_commits_once(
        self, delivery_service, mock_session, courier, make_order
    ):
        order = make_order(courier_id=courier.id)
        delivery_service.repository.get_assignment_by_order.return_value = order.assignment

        await delivery_service.pick_up(courier, order.id)
        await delivery_service.pick_up(courier, order.id)

        mock_session.commit.assert_awaited_once()


class TestCustomerResponse:
    @pytest.fixture
    def claimed(self, customer, courier, make_order):
        order = make_order(
            user_id=customer.id,
            status=OrderStatus.OUT_FOR_DELIVERY,
            courier_id=courier.id,
        )
        order.assignment.picked_up_at = utcnow()
        order.assignment.marked_delivered_at = utcnow()
        return order.assignment

    @pytest.mark.asyncio
    async def test_courier_marks_delivered(self, delivery_service, courier, make_order):
        order = make_order(status=OrderStatus.OUT_FOR_DELIVERY, courier_id=courier.id)
        order.assignment.picked_up_at = utcnow()
        delivery_service.repository.get_assignment.return_value = order.assignment

        assignment = await delivery_service.mark_delivered(courier, order.assignment.id)

        assert assignment.state == DeliveryState.MARKED_DELIVERED
        assert order.status == OrderStatus.OUT_FOR_DELIVERY

    @pytest.mark.asyncio
    async def test_customer_confirms(
        self, delivery_service, payout_service, customer, claimed
    ):
        delivery_service.repository.get_assignment.return_value = claimed

        await delivery_service.respond_to_delivery(customer, claimed.id, accepted=True)

        assert claimed.order.status == OrderStatus.DELIVERED
        payout_service.accrue_commissions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_customer_disputes(
        self, delivery_service, payout_service, customer, claimed
    ):
        delivery_service.repository.get_assignment.return_value = claimed

        await delivery_service.respond_to_delivery(
            customer, claimed.id, accepted=False, reason="Bag was empty"
        )

        assert claimed.state == DeliveryState.REJECTED
        assert claimed.order.status == OrderStatus.OUT_FOR_DELIVERY
        payout_service.accrue_commissions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_courier_cannot_confirm_own_delivery(
        self, delivery_service, courier, claimed
    ):
        delivery_service.repository.get_assignment.return_value = claimed

        with pytest.raises(AuthorizationError):
            await delivery_service.respond_to_delivery(courier, claimed.id, accepted=True)

    @pytest.mark.asyncio
    async def test_dispute_queue_is_staff_only(self, delivery_service, customer, admin):
        delivery_service.repository.list_disputes.return_value = []

        with pytest.raises(AuthorizationError):
            await delivery_service.dispute_queue(customer)
        assert await delivery_service.dispute_queue(admin) == []


# ============================================================================
# Activations
# ============================================================================


class TestActivations:
    @pytest.mark.asyncio
    async def test_customer_cannot_request(self, delivery_service, customer):
        with pytest.raises(AuthorizationError):
            await delivery_service.request_activation(customer)

    @pytest.mark.asyncio
    async def test_request_creates_pending(
        self, delivery_service, mock_session, courier, make_activation
    ):
        delivery_service.repository.get_activation.return_value = None
        delivery_service.repository.create_activation.return_value = make_activation(
            courier.id
        )

        activation = await delivery_service.request_activation(courier)

        assert activation.status == ActivationStatus.PENDING
        args = delivery_service.repository.create_activation.await_args.args
        assert args[0] == courier.id
        assert args[2] == 8
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_repeated_request_returns_existing(
        self, delivery_service, mock_session, courier, make_activation
    ):
        existing = make_activation(courier.id)
        delivery_service.repository.get_activation.return_value = existing

        assert await delivery_service.request_activation(courier) is existing
        delivery_service.repository.create_activation.assert_not_awaited()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approve_assigns_waiting_orders(
        self, delivery_service, mock_session, admin, courier, make_activation, make_order
    ):
        activation = make_activation(courier.id)
        unassigned = make_order()
        orphaned = make_order(courier_id=uuid.uuid4())
        orphaned.assignment.delivery_person_id = None
        delivery_service.repository.get_activation_by_id.return_value = activation
        delivery_service.repository.pending_unassigned_orders.return_value = [
            unassigned,
            orphaned,
        ]

        result, assigned = await delivery_service.approve_activation(admin, activation.id)

        assert result.status == ActivationStatus.APPROVED
        assert result.admin_id == admin.id
        assert result.approved_until - utcnow() <= timedelta(hours=8)
        assert assigned == [unassigned.id, orphaned.id]
        delivery_service.repository.create_assignment.assert_awaited_once()
        assert orphaned.assignment.delivery_person_id == courier.id
        delivery_service.repository.pending_unassigned_orders.assert_awaited_once_with(5)
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_approve_twice_is_noop(
        self, delivery_service, mock_session, admin, courier, make_activation
    ):
        activation = make_activation(courier.id, status=ActivationStatus.APPROVED)
        delivery_service.repository.get_activation_by_id.return_value = activation

        result, assigned = await delivery_service.approve_activation(admin, activation.id)

        assert result is activation
        assert assigned == []
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cannot_reject_approved(
        self, delivery_service, admin, courier, make_activation
    ):
        activation = make_activation(courier.id, status=ActivationStatus.APPROVED)
        delivery_service.repository.get_activation_by_id.return_value = activation

        with pytest.raises(ActivationStateError):
            await delivery_service.reject_activation(admin, activation.id)

    @pytest.mark.asyncio
    async def test_courier_cannot_approve_self(
        self, delivery_service, courier, make_activation
    ):
        with pytest.raises(AuthorizationError):
            await delivery_service.approve_activation(courier, uuid.uuid4())
