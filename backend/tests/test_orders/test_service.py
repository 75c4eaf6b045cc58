"""
Tests for OrderService.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from quickcart.services.authorization.policy import AuthorizationError
from quickcart.services.orders.enums import OrderStatus
from quickcart.services.orders.service import PRICE_MANIPULATION, OrderService
from quickcart.services.orders.state_machine import OrderStateMachine


@pytest.fixture
def state_machine(mock_session) -> OrderStateMachine:
    return OrderStateMachine(
        mock_session, inventory_service=AsyncMock(), payout_service=AsyncMock()
    )


@pytest.fixture
def order_service(mock_session, settings, state_machine) -> OrderService:
    service = OrderService(mock_session, settings=settings, state_machine=state_machine)
    service.repository.get_order = AsyncMock()
    service.repository.record_security_event = AsyncMock()
    return service


class TestGetOrder:
    @pytest.mark.asyncio
    async def test_owner_can_view(self, order_service, customer, make_order):
        order = make_order(user_id=customer.id)
        order_service.repository.get_order.return_value = order

        assert await order_service.get_order(customer, order.id) is order

    @pytest.mark.asyncio
    async def test_assigned_courier_can_view(self, order_service, courier, make_order):
        order = make_order(courier_id=courier.id)
        order_service.repository.get_order.return_value = order

        assert await order_service.get_order(courier, order.id) is order

    @pytest.mark.asyncio
    async def test_other_customer_cannot_view(self, order_service, customer, make_order):
        order_service.repository.get_order.return_value = make_order()

        with pytest.raises(AuthorizationError):
            await order_service.get_order(customer, uuid.uuid4())


class TestCancelOrder:
    """Customers cancel while pending, staff until terminal."""

    @pytest.mark.asyncio
    async def test_customer_cancels_pending(
        self, order_service, state_machine, mock_session, customer, make_order
    ):
        order = make_order(user_id=customer.id)
        order_service.repository.get_order.return_value = order

        result = await order_service.cancel_order(customer, order.id, reason="Ordered twice")

        assert result.status == OrderStatus.CANCELLED
        state_machine.inventory_service.restore_order_stock.assert_awaited_once_with(order)
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_customer_cannot_cancel_after_confirmation(
        self, order_service, mock_session, customer, make_order
    ):
        order = make_order(user_id=customer.id, status=OrderStatus.CONFIRMED)
        order_service.repository.get_order.return_value = order

        with pytest.raises(AuthorizationError):
            await order_service.cancel_order(customer, order.id)

        assert order.status == OrderStatus.CONFIRMED
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_customer_cannot_cancel_someone_elses_order(
        self, order_service, customer, make_order
    ):
        order_service.repository.get_order.return_value = make_order()

        with pytest.raises(AuthorizationError):
            await order_service.cancel_order(customer, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_admin_cancels_out_for_delivery(
        self, order_service, admin, make_order
    ):
        order = make_order(status=OrderStatus.OUT_FOR_DELIVERY, courier_id=uuid.uuid4())
        order_service.repository.get_order.return_value = order

        await order_service.cancel_order(admin, order.id, reason="Store closed")

        assert order.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancelling_cancelled_order_is_noop(
        self, order_service, state_machine, mock_session, customer, make_order
    ):
        order = make_order(user_id=customer.id, status=OrderStatus.CANCELLED)
        order_service.repository.get_order.return_value = order

        await order_service.cancel_order(customer, order.id)

        state_machine.inventory_service.restore_order_stock.assert_not_awaited()
        mock_session.commit.assert_not_awaited()


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_customer_cannot_update_status(self, order_service, customer, make_order):
        order_service.repository.get_order.return_value = make_order(user_id=customer.id)

        with pytest.raises(AuthorizationError):
            await order_service.update_status(customer, uuid.uuid4(), OrderStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_admin_update_overrides_guards(
        self, order_service, mock_session, admin, make_order
    ):
        order = make_order()
        order_service.repository.get_order.return_value = order

        await order_service.update_status(admin, order.id, OrderStatus.OUT_FOR_DELIVERY)

        assert order.status == OrderStatus.OUT_FOR_DELIVERY
        mock_session.commit.assert_awaited_once()


class TestVerifyOrderTotal:
    """Integrity check of the stored total."""

    @pytest.mark.asyncio
    async def test_consistent_total(self, order_service, make_order):
        order_service.repository.get_order.return_value = make_order()

        assert await order_service.verify_order_total(uuid.uuid4()) is True
        order_service.repository.record_security_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_within_tolerance(self, order_service, make_order):
        order = make_order()
        order.total_amount = order.total_amount + Decimal("0.50")
        order_service.repository.get_order.return_value = order

        assert await order_service.verify_order_total(order.id) is True

    @pytest.mark.asyncio
    async def test_mismatch_records_security_event(
        self, order_service, mock_session, make_order
    ):
        order = make_order()
        order.total_amount = Decimal("1.00")
        order_service.repository.get_order.return_value = order

        assert await order_service.verify_order_total(order.id) is False

        user_id, activity, details = order_service.repository.record_security_event.await_args.args
        assert user_id == order.user_id
        assert activity == PRICE_MANIPULATION
        assert details["expected_total"] == "200.00"
        mock_session.commit.assert_awaited_once()
