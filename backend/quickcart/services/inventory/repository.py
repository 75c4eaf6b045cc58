"""
Inventory ledger data access.

Stock is only ever changed with conditional UPDATE statements so that the
``stock_quantity >= 0`` invariant holds even if two transactions race past
validation. Product rows read for placement are locked with
``SELECT ... FOR UPDATE`` in primary key order to keep lock acquisition
deadlock free.
"""

import uuid
from typing import Any, Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import Product, ProductVariant

logger = get_logger(__name__)


class InventoryRepositoryError(Exception):
    """Base exception for inventory data access errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class ProductNotFoundError(InventoryRepositoryError):
    """Raised when a product referenced by an operation does not exist."""

    pass


class InventoryIntegrityError(InventoryRepositoryError):
    """
    Raised when a conditional decrement matches no row.

    Seeing this means the stock observed under lock changed before the write,
    which the locking discipline rules out. It is fatal for the transaction.
    """

    pass


class InventoryRepository:
    """
    Reads and mutates product stock.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_products(
        self, product_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, Product]:
        """
        Load and row-lock products for the rest of the transaction.

        Args:
            product_ids: Products referenced by the cart, duplicates allowed

        Returns:
            Mapping of id to product for the ids that exist
        """
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return {}

        try:
            result = await self.session.execute(
                select(Product)
                .where(Product.id.in_(ids))
                .order_by(Product.id)
                .with_for_update(of=Product)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to lock products", product_count=len(ids), error=str(e))
            raise InventoryRepositoryError(
                "Failed to lock products", product_ids=[str(i) for i in ids]
            ) from e

        products = {product.id: product for product in result.scalars().all()}
        logger.debug("Products locked", requested=len(ids), found=len(products))
        return products

    async def get_products(
        self, product_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, Product]:
        """Unlocked read for cart display and merging."""
        ids = set(product_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Product).where(Product.id.in_(ids)))
        return {product.id: product for product in result.scalars().all()}

    async def get_variants(
        self, variant_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, ProductVariant]:
        ids = set(variant_ids)
        if not ids:
            return {}

        try:
            result = await self.session.execute(
                select(ProductVariant).where(ProductVariant.id.in_(ids))
            )
        except SQLAlchemyError as e:
            raise InventoryRepositoryError("Failed to load variants") from e

        return {variant.id: variant for variant in result.scalars().all()}

    async def decrement_stock(self, product_id: uuid.UUID, quantity: int) -> None:
        """
        Take ``quantity`` units out of stock.

        The WHERE clause only matches while enough stock remains, and the new
        value is floored at zero.

        Raises:
            InventoryIntegrityError: If the row no longer has enough stock
        """
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=func.greatest(Product.stock_quantity - quantity, 0))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.error(
                "Conditional stock decrement matched no row",
                product_id=str(product_id),
                quantity=quantity,
            )
            raise InventoryIntegrityError(
                "Stock changed during placement",
                product_id=str(product_id),
                quantity=quantity,
            )

    async def increment_stock(self, product_id: uuid.UUID, quantity: int) -> int:
        """
        Put ``quantity`` units back and return the new stock level.

        Raises:
            ProductNotFoundError: If the product is gone
        """
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .returning(Product.stock_quantity)
            .execution_options(synchronize_session=False)
        )
        new_quantity = result.scalar_one_or_none()
        if new_quantity is None:
            raise ProductNotFoundError(
                "Product not found", product_id=str(product_id)
            )
        return new_quantity

    async def get_stock(self, product_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(Product.stock_quantity).where(Product.id == product_id)
        )
        stock = result.scalar_one_or_none()
        if stock is None:
            raise ProductNotFoundError("Product not found", product_id=str(product_id))
        return stock
