"""
Order data access.

Order creation only adds and flushes rows; committing is left to the caller
so the order, its items, the stock decrements and the coupon redemption are
written by one transaction.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import (
    Order,
    OrderItem,
    OrderStatusHistory,
    SecurityEvent,
)
from quickcart.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderNotFoundError(OrderRepositoryError):
    """Raised when an order does not exist."""

    pass


class OrderCreationError(OrderRepositoryError):
    """Raised when inserting an order or its items fails."""

    pass


class OrderRepository:
    """
    Repository for orders, items and status history.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_order_with_items(
        self,
        user_id: uuid.UUID,
        order_number: str,
        delivery_address: str,
        subtotal: Decimal,
        discount_amount: Decimal,
        delivery_fee: Decimal,
        total_amount: Decimal,
        items: Sequence[dict[str, Any]],
        coupon_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Insert a pending order with its items and first history entry.

        Args:
            user_id: Customer placing the order
            order_number: Human readable order number
            delivery_address: Free text address
            subtotal: Sum of item prices
            discount_amount: Server computed coupon discount
            delivery_fee: Fee charged for the order
            total_amount: subtotal - discount + fee
            items: Dicts with product_id, variant_id, product_name, quantity, price
            coupon_id: Redeemed coupon, if any

        Returns:
            The flushed order

        Raises:
            OrderCreationError: If the insert fails
        """
        try:
            order = Order(
                id=uuid.uuid4(),
                user_id=user_id,
                order_number=order_number,
                status=OrderStatus.PENDING,
                delivery_address=delivery_address,
                subtotal=subtotal,
                discount_amount=discount_amount,
                delivery_fee=delivery_fee,
                total_amount=total_amount,
                coupon_id=coupon_id,
                items=[
                    OrderItem(
                        product_id=item["product_id"],
                        variant_id=item.get("variant_id"),
                        product_name=item["product_name"],
                        quantity=item["quantity"],
                        price=item["price"],
                    )
                    for item in items
                ],
                status_history=[
                    OrderStatusHistory(
                        from_status=None,
                        to_status=OrderStatus.PENDING,
                        changed_by=user_id,
                        reason="Order placed",
                        details={},
                    )
                ],
            )
            self.session.add(order)
            await self.session.flush()
        except IntegrityError as e:
            logger.error(
                "Order insert violated a constraint",
                user_id=str(user_id),
                order_number=order_number,
                error=str(e.orig) if e.orig else str(e),
            )
            raise OrderCreationError(
                "Order violates a database constraint", order_number=order_number
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Order insert failed",
                user_id=str(user_id),
                order_number=order_number,
                error=str(e),
            )
            raise OrderCreationError(
                "Failed to create order", order_number=order_number
            ) from e

        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=order_number,
            item_count=len(items),
            total_amount=str(total_amount),
        )
        return order

    async def get_order(
        self,
        order_id: uuid.UUID,
        for_update: bool = False,
    ) -> Order:
        """
        Load an order with items and assignment.

        Args:
            order_id: Order id
            for_update: Lock the order row for a status change

        Raises:
            OrderNotFoundError: If no such order exists
        """
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update(of=Order)

        result = await self.session.execute(stmt)
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def list_user_orders(
        self,
        user_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    def add_status_history(
        self,
        order: Order,
        from_status: OrderStatus,
        to_status: OrderStatus,
        changed_by: Optional[uuid.UUID],
        reason: Optional[str],
        details: Optional[dict[str, Any]] = None,
    ) -> OrderStatusHistory:
        entry = OrderStatusHistory(
            order_id=order.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            reason=reason,
            details=details or {},
        )
        self.session.add(entry)
        return entry

    async def record_security_event(
        self,
        user_id: Optional[uuid.UUID],
        activity_type: str,
        details: dict[str, Any],
    ) -> SecurityEvent:
        event = SecurityEvent(
            user_id=user_id, activity_type=activity_type, details=details
        )
        self.session.add(event)
        await self.session.flush()
        return event
