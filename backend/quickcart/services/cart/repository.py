"""
Server cart data access.

A line is identified by (user, product, variant). Quantities are always
written as absolute values so that repeating a write is harmless.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import CartItem

logger = get_logger(__name__)


class CartRepositoryError(Exception):
    """Base exception for cart repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class CartRepository:
    """
    Repository for cart lines.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_lines(self, user_id: uuid.UUID) -> list[CartItem]:
        """
        All lines of a user's cart in insertion order.
        """
        try:
            result = await self.session.execute(
                select(CartItem)
                .where(CartItem.user_id == user_id)
                .order_by(CartItem.created_at, CartItem.id)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to load cart", user_id=str(user_id), error=str(e))
            raise CartRepositoryError("Failed to load cart", user_id=str(user_id)) from e
        return list(result.scalars().all())

    async def get_line(self, line_id: uuid.UUID) -> Optional[CartItem]:
        return await self.session.get(CartItem, line_id)

    async def find_line(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
    ) -> Optional[CartItem]:
        variant_clause = (
            CartItem.variant_id.is_(None)
            if variant_id is None
            else CartItem.variant_id == variant_id
        )
        result = await self.session.execute(
            select(CartItem).where(
                CartItem.user_id == user_id,
                CartItem.product_id == product_id,
                variant_clause,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_line(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
        quantity: int,
    ) -> CartItem:
        """
        Set the quantity of the (product, variant) line, creating it if needed.
        """
        line = await self.find_line(user_id, product_id, variant_id)
        if line is None:
            line = CartItem(
                user_id=user_id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
            )
            self.session.add(line)
        else:
            line.quantity = quantity

        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to write cart line",
                user_id=str(user_id),
                product_id=str(product_id),
                error=str(e),
            )
            raise CartRepositoryError(
                "Failed to write cart line", product_id=str(product_id)
            ) from e
        return line

    async def delete_line(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
    ) -> bool:
        """
        Delete the (product, variant) line if present.

        Returns:
            True if a line was removed
        """
        line = await self.find_line(user_id, product_id, variant_id)
        if line is None:
            return False
        await self.session.delete(line)
        await self.session.flush()
        return True

    async def clear_user_cart(self, user_id: uuid.UUID) -> int:
        """
        Remove every line of a user's cart.

        Returns:
            Number of lines removed
        """
        result = await self.session.execute(
            delete(CartItem)
            .where(CartItem.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        logger.debug("Cart cleared", user_id=str(user_id), lines=result.rowcount)
        return result.rowcount or 0
