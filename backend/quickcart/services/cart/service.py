"""
Cart service for signed-in customers.

Covers cart editing, the sign-in merge of a guest cart and the cart
snapshot handed to order placement.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.config import Settings, get_settings
from quickcart.core.logging import get_logger
from quickcart.database.models import CartItem
from quickcart.services.authorization.policy import (
    Action,
    Actor,
    Policy,
    Resource,
    get_policy,
)
from quickcart.services.cart.guest import GuestCart, MergeStrategy
from quickcart.services.cart.repository import CartRepository
from quickcart.services.inventory.repository import InventoryRepository
from quickcart.services.orders.placement import CartLineInput
from quickcart.services.orders.pricing import (
    compute_delivery_fee,
    compute_subtotal,
    resolve_unit_price,
)

logger = get_logger(__name__)


class CartServiceError(Exception):
    """Base exception for cart service errors."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


class CartItemNotFoundError(CartServiceError):
    """Raised when a cart line does not exist."""

    def __init__(self, line_id: uuid.UUID, **context: Any):
        super().__init__(
            "Cart item not found",
            code="CART_ITEM_NOT_FOUND",
            line_id=str(line_id),
            **context,
        )


class ProductUnavailableError(CartServiceError):
    """Raised when adding a missing or inactive product."""

    def __init__(self, product_id: uuid.UUID, **context: Any):
        super().__init__(
            "Product is not available",
            code="PRODUCT_UNAVAILABLE",
            product_id=str(product_id),
            **context,
        )


@dataclass
class CartView:
    """Priced view of a cart. Totals are estimates until placement."""

    lines: list[dict[str, Any]] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")

    @property
    def estimated_total(self) -> Decimal:
        return self.subtotal + self.delivery_fee


class CartService:
    """
    Server cart operations, all scoped to the acting customer.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        policy: Optional[Policy] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repository = CartRepository(session)
        self.inventory = InventoryRepository(session)
        self.policy = policy or get_policy()

    def _authorize(self, actor: Actor, owner_id: uuid.UUID) -> None:
        self.policy.authorize(actor, Action.MANAGE_CART, Resource(owner_id=owner_id))

    async def get_cart(self, actor: Actor) -> CartView:
        """
        Price the actor's cart against the live catalog.
        """
        self._authorize(actor, actor.id)
        lines = await self.repository.get_lines(actor.id)

        view = CartView()
        priced: list[tuple[Decimal, int]] = []
        for line in lines:
            unit_price = resolve_unit_price(line.product, line.variant)
            priced.append((unit_price, line.quantity))
            view.lines.append(
                {
                    "id": str(line.id),
                    "product_id": str(line.product_id),
                    "variant_id": str(line.variant_id) if line.variant_id else None,
                    "product_name": line.product.name,
                    "variant_name": line.variant.label if line.variant else None,
                    "quantity": line.quantity,
                    "unit_price": str(unit_price),
                    "available": line.product.stock_quantity,
                }
            )

        view.subtotal = compute_subtotal(priced)
        if lines:
            view.delivery_fee = compute_delivery_fee(
                view.subtotal, (line.product for line in lines), self.settings
            )
        return view

    async def add_item(
        self,
        actor: Actor,
        product_id: uuid.UUID,
        quantity: int = 1,
        variant_id: Optional[uuid.UUID] = None,
    ) -> CartItem:
        """
        Add ``quantity`` units, merging into an existing line for the same
        product and variant.

        Raises:
            CartServiceError: If quantity is not positive
            ProductUnavailableError: If the product or variant cannot be sold
        """
        self._authorize(actor, actor.id)
        if quantity <= 0:
            raise CartServiceError(
                "Quantity must be at least 1", code="INVALID_QUANTITY", quantity=quantity
            )

        await self._ensure_sellable(product_id, variant_id)

        existing = await self.repository.find_line(actor.id, product_id, variant_id)
        new_quantity = quantity + (existing.quantity if existing else 0)
        line = await self.repository.upsert_line(
            actor.id, product_id, variant_id, new_quantity
        )
        await self.session.commit()

        logger.info(
            "Cart item added",
            user_id=str(actor.id),
            product_id=str(product_id),
            quantity=new_quantity,
        )
        return line

    async def update_quantity(
        self, actor: Actor, line_id: uuid.UUID, quantity: int
    ) -> Optional[CartItem]:
        """
        Set a line's quantity. Zero or less removes the line.

        Returns:
            The updated line, or None when it was removed

        Raises:
            CartItemNotFoundError: If the line does not exist
        """
        line = await self.repository.get_line(line_id)
        if line is None:
            raise CartItemNotFoundError(line_id)
        self._authorize(actor, line.user_id)

        if quantity <= 0:
            await self.repository.delete_line(line.user_id, line.product_id, line.variant_id)
            await self.session.commit()
            return None

        line = await self.repository.upsert_line(
            line.user_id, line.product_id, line.variant_id, quantity
        )
        await self.session.commit()
        return line

    async def remove_item(self, actor: Actor, line_id: uuid.UUID) -> None:
        line = await self.repository.get_line(line_id)
        if line is None:
            raise CartItemNotFoundError(line_id)
        self._authorize(actor, line.user_id)

        await self.repository.delete_line(line.user_id, line.product_id, line.variant_id)
        await self.session.commit()

    async def set_line_quantity(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
        quantity: int,
    ) -> None:
        """
        Absolute quantity write by (product, variant), used by conflict
        resolution. Missing lines are left alone.
        """
        if await self.repository.find_line(user_id, product_id, variant_id) is None:
            return
        if quantity <= 0:
            await self.repository.delete_line(user_id, product_id, variant_id)
        else:
            await self.repository.upsert_line(user_id, product_id, variant_id, quantity)

    async def remove_line(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
    ) -> bool:
        return await self.repository.delete_line(user_id, product_id, variant_id)

    async def get_placement_lines(self, user_id: uuid.UUID) -> list[CartLineInput]:
        """
        Snapshot of the cart in the shape placement expects.
        """
        lines = await self.repository.get_lines(user_id)
        return [
            CartLineInput(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=line.quantity,
            )
            for line in lines
        ]

    async def merge_guest_cart(
        self,
        actor: Actor,
        guest_cart: GuestCart,
        strategy: MergeStrategy = MergeStrategy.MERGE,
    ) -> int:
        """
        Fold a guest cart into the actor's server cart on sign-in.

        Lines for missing or inactive products are skipped. Resulting
        quantities are clamped to current stock so the merged cart does not
        immediately fail placement.

        Args:
            actor: Customer who just signed in
            guest_cart: Cart posted by the client
            strategy: MERGE, REPLACE or KEEP_SERVER

        Returns:
            Number of server lines written
        """
        self._authorize(actor, actor.id)

        if strategy == MergeStrategy.KEEP_SERVER or len(guest_cart) == 0:
            logger.info(
                "Guest cart discarded",
                user_id=str(actor.id),
                strategy=strategy.value,
                guest_lines=len(guest_cart),
            )
            return 0

        if strategy == MergeStrategy.REPLACE:
            await self.repository.clear_user_cart(actor.id)

        products = await self.inventory.get_products(
            product_id for (product_id, _), _ in guest_cart
        )

        written = 0
        for (product_id, variant_id), quantity in guest_cart:
            product = products.get(product_id)
            if product is None or not product.is_active or product.stock_quantity <= 0:
                continue

            existing = None
            if strategy == MergeStrategy.MERGE:
                existing = await self.repository.find_line(actor.id, product_id, variant_id)
            target = quantity + (existing.quantity if existing else 0)
            target = min(target, product.stock_quantity)

            await self.repository.upsert_line(actor.id, product_id, variant_id, target)
            written += 1

        await self.session.commit()

        logger.info(
            "Guest cart merged",
            user_id=str(actor.id),
            strategy=strategy.value,
            guest_lines=len(guest_cart),
            written=written,
        )
        return written

    async def _ensure_sellable(
        self, product_id: uuid.UUID, variant_id: Optional[uuid.UUID]
    ) -> None:
        products = await self.inventory.get_products([product_id])
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise ProductUnavailableError(product_id)

        if variant_id is not None:
            variants = await self.inventory.get_variants([variant_id])
            variant = variants.get(variant_id)
            if variant is None or variant.product_id != product_id:
                raise ProductUnavailableError(product_id, variant_id=str(variant_id))
