"""
Inventory ledger operations outside of placement.

Placement decrements stock through the repository directly. This service
covers the two ways stock comes back: restoring a cancelled order's items and
an admin restock.
"""

import uuid
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import Order
from quickcart.services.authorization.policy import (
    Action,
    Actor,
    Policy,
    get_policy,
)
from quickcart.services.inventory.repository import InventoryRepository

logger = get_logger(__name__)


class InventoryServiceError(Exception):
    """Base exception for inventory service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class InventoryService:
    """
    Stock restoration and restocking.
    """

    def __init__(self, session: AsyncSession, policy: Optional[Policy] = None):
        self.session = session
        self.repository = InventoryRepository(session)
        self.policy = policy or get_policy()

    async def restore_order_stock(self, order: Order) -> int:
        """
        Return every item of ``order`` to stock.

        Callers are responsible for running this once per order; the order
        state machine does so from its cancellation handler.

        Args:
            order: Order whose items are loaded

        Returns:
            Total units restored
        """
        restored = 0
        for item in order.items:
            await self.repository.increment_stock(item.product_id, item.quantity)
            restored += item.quantity

        logger.info(
            "Order stock restored",
            order_id=str(order.id),
            item_count=len(order.items),
            units=restored,
        )
        return restored

    async def get_stock(self, product_id: uuid.UUID) -> int:
        return await self.repository.get_stock(product_id)

    async def restock(self, actor: Actor, product_id: uuid.UUID, quantity: int) -> int:
        """
        Add stock received from a supplier.

        Args:
            actor: Staff member recording the delivery
            product_id: Product being restocked
            quantity: Units received, must be positive

        Returns:
            New stock level

        Raises:
            AuthorizationError: If the actor is not staff
            InventoryServiceError: If quantity is not positive
        """
        self.policy.authorize(actor, Action.RESTOCK_INVENTORY)
        if quantity <= 0:
            raise InventoryServiceError(
                "Restock quantity must be positive", quantity=quantity
            )

        new_stock = await self.repository.increment_stock(product_id, quantity)
        await self.session.commit()

        logger.info(
            "Product restocked",
            product_id=str(product_id),
            quantity=quantity,
            stock_quantity=new_stock,
        )
        return new_stock
