"""
Tests for the inventory ledger repository.

The statements handed to the session are compiled for PostgreSQL so the
row locks and the conditional decrement can be checked as SQL.
"""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from quickcart.services.inventory.repository import (
    InventoryIntegrityError,
    InventoryRepository,
    InventoryRepositoryError,
)


def compile_pg(statement):
    return statement.compile(dialect=postgresql.dialect())


@pytest.fixture
def repository(mock_session) -> InventoryRepository:
    return InventoryRepository(mock_session)


def executed_statement(mock_session):
    return mock_session.execute.await_args.args[0]


# ============================================================================
# Row Locks
# ============================================================================


class TestLockProducts:
    @pytest.mark.asyncio
    async def test_locks_rows_in_id_order(self, repository, mock_session, make_product):
        first, second = make_product(), make_product(name="Britannia Bread")
        result = MagicMock()
        result.scalars.return_value.all.return_value = [first, second]
        mock_session.execute.return_value = result

        products = await repository.lock_products([second.id, first.id, second.id])

        assert products == {first.id: first, second.id: second}
        compiled = compile_pg(executed_statement(mock_session))
        sql = str(compiled)
        assert "FOR UPDATE OF products" in sql
        assert "ORDER BY products.id" in sql
        id_lists = [v for v in compiled.params.values() if isinstance(v, list)]
        assert id_lists == [sorted({first.id, second.id}, key=str)]

    @pytest.mark.asyncio
    async def test_no_ids_skips_query(self, repository, mock_session):
        assert await repository.lock_products([]) == {}
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_error_is_wrapped(self, repository, mock_session):
        mock_session.execute.side_effect = OperationalError(
            "SELECT products", {}, Exception("connection lost")
        )

        with pytest.raises(InventoryRepositoryError):
            await repository.lock_products([uuid.uuid4()])


# ============================================================================
# Conditional Decrement
# ============================================================================


class TestDecrementStock:
    @pytest.mark.asyncio
    async def test_update_is_conditional_and_floored(self, repository, mock_session):
        product_id = uuid.uuid4()
        mock_session.execute.return_value = MagicMock(rowcount=1)

        await repository.decrement_stock(product_id, 2)

        compiled = compile_pg(executed_statement(mock_session))
        sql = str(compiled)
        assert sql.startswith("UPDATE products")
        assert "SET stock_quantity=greatest(" in sql
        assert "products.stock_quantity >= %(" in sql
        assert "products.id = %(" in sql
        assert product_id in compiled.params.values()
        assert 2 in compiled.params.values()
        assert 0 in compiled.params.values()

    @pytest.mark.asyncio
    async def test_no_matching_row_is_an_integrity_error(self, repository, mock_session):
        product_id = uuid.uuid4()
        mock_session.execute.return_value = MagicMock(rowcount=0)

        with pytest.raises(InventoryIntegrityError) as exc_info:
            await repository.decrement_stock(product_id, 5)

        assert exc_info.value.context == {"product_id": str(product_id), "quantity": 5}


class TestIncrementStock:
    @pytest.mark.asyncio
    async def test_returns_new_level(self, repository, mock_session):
        mock_session.execute.return_value = MagicMock(
            scalar_one_or_none=MagicMock(return_value=14)
        )

        assert await repository.increment_stock(uuid.uuid4(), 4) == 14
        sql = str(compile_pg(executed_statement(mock_session)))
        assert "RETURNING products.stock_quantity" in sql
