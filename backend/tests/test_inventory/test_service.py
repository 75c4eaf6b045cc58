"""
Tests for the inventory ledger service.
"""

import uuid
from unittest.mock import AsyncMock, call

import pytest

from quickcart.services.authorization.policy import AuthorizationError
from quickcart.services.inventory.service import InventoryService, InventoryServiceError


@pytest.fixture
def inventory_service(mock_session) -> InventoryService:
    service = InventoryService(mock_session)
    service.repository = AsyncMock()
    service.repository.increment_stock.return_value = 12
    return service


class TestRestoreOrderStock:
    @pytest.mark.asyncio
    async def test_returns_every_item(self, inventory_service, mock_session, make_order):
        first, second = uuid.uuid4(), uuid.uuid4()
        order = make_order(items=[(first, 2, "10.00"), (second, 3, "5.00")])

        restored = await inventory_service.restore_order_stock(order)

        assert restored == 5
        inventory_service.repository.increment_stock.assert_has_awaits(
            [call(first, 2), call(second, 3)]
        )
        mock_session.commit.assert_not_awaited()


class TestGetStock:
    @pytest.mark.asyncio
    async def test_reads_current_level(self, inventory_service):
        product_id = uuid.uuid4()
        inventory_service.repository.get_stock.return_value = 7

        assert await inventory_service.get_stock(product_id) == 7
        inventory_service.repository.get_stock.assert_awaited_once_with(product_id)


class TestRestock:
    @pytest.mark.asyncio
    async def test_staff_restock(self, inventory_service, mock_session, admin):
        product_id = uuid.uuid4()

        assert await inventory_service.restock(admin, product_id, 10) == 12
        inventory_service.repository.increment_stock.assert_awaited_once_with(product_id, 10)
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_customer_cannot_restock(self, inventory_service, customer):
        with pytest.raises(AuthorizationError):
            await inventory_service.restock(customer, uuid.uuid4(), 10)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_quantity_must_be_positive(self, inventory_service, admin, quantity):
        with pytest.raises(InventoryServiceError):
            await inventory_service.restock(admin, uuid.uuid4(), quantity)
