"""
Atomic order placement.

``OrderPlacementService.place_order`` turns a cart snapshot into an order in
one database transaction:

0. refuse the order outright while the shop is closed
1. lock the referenced product rows and classify every cart line
2. price the lines from the locked rows
3. re-validate the coupon against the fresh subtotal
4. insert the order and its items with snapshotted prices
5. decrement stock with conditional updates
6. record the coupon redemption
7. clear the server cart
8. try to assign a courier

Validation problems come back as a ``PlacementResult`` with conflicts; only
infrastructure failures raise, and those roll back every write.
"""

import secrets
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.config import Settings, get_settings
from quickcart.core.logging import get_logger, log_performance
from quickcart.database.models import Product, ProductVariant
from quickcart.services.cart.repository import CartRepository, CartRepositoryError
from quickcart.services.coupons.repository import CouponRepositoryError
from quickcart.services.coupons.service import CouponService
from quickcart.services.delivery.repository import DeliveryRepositoryError
from quickcart.services.delivery.service import DeliveryService
from quickcart.services.inventory.repository import (
    InventoryRepository,
    InventoryRepositoryError,
)
from quickcart.services.orders.enums import ConflictType
from quickcart.services.orders.pricing import (
    ZERO,
    compute_delivery_fee,
    compute_subtotal,
    compute_total,
    resolve_unit_price,
)
from quickcart.services.orders.repository import OrderRepository, OrderRepositoryError
from quickcart.services.shop.service import ShopService

logger = get_logger(__name__)

ERROR_USER_REQUIRED = "User authentication required"
ERROR_ADDRESS_REQUIRED = "Delivery address is required"
ERROR_CART_EMPTY = "Cart is empty"
ERROR_ITEMS_UNAVAILABLE = "Some items are unavailable"
ERROR_COUPON_USED = "Coupon has already been used"


class OrderPlacementError(Exception):
    """Raised when placement fails for a reason other than validation."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


@dataclass(frozen=True)
class CartLineInput:
    """
    One cart line submitted for checkout.

    ``price`` is what the client displayed. It is only compared with the
    authoritative price for logging.
    """

    product_id: uuid.UUID
    quantity: int
    variant_id: Optional[uuid.UUID] = None
    price: Optional[Decimal] = None


@dataclass(frozen=True)
class StockConflict:
    """
    Why a cart line cannot be fulfilled right now.
    """

    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    product_name: str
    variant_name: Optional[str]
    requested: int
    available: int
    conflict_type: ConflictType


@dataclass(frozen=True)
class ResolvedLine:
    """A cart line that passed validation, with its authoritative price."""

    line: CartLineInput
    product: Product
    variant: Optional[ProductVariant]
    unit_price: Decimal


@dataclass
class PlacementResult:
    """
    Outcome of a placement attempt.
    """

    success: bool
    order_id: Optional[uuid.UUID] = None
    order_number: Optional[str] = None
    total: Optional[Decimal] = None
    discount: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    error: Optional[str] = None
    product_id: Optional[uuid.UUID] = None
    conflicts: list[StockConflict] = field(default_factory=list)
    courier_id: Optional[uuid.UUID] = None


def classify_lines(
    lines: Sequence[CartLineInput],
    products: dict[uuid.UUID, Product],
    variants: dict[uuid.UUID, ProductVariant],
) -> tuple[list[StockConflict], list[ResolvedLine]]:
    """
    Check every line against locked catalog rows.

    Variants share their product's stock, so availability is tracked per
    product across lines: a line only sees what earlier lines left over.
    Each failing line produces exactly one conflict.

    Returns:
        (conflicts, lines that passed)
    """
    conflicts: list[StockConflict] = []
    resolved: list[ResolvedLine] = []
    claimed: dict[uuid.UUID, int] = defaultdict(int)

    for line in lines:
        product = products.get(line.product_id)
        variant = variants.get(line.variant_id) if line.variant_id else None
        variant_name = variant.label if variant is not None else None

        def conflict(kind: ConflictType, available: int) -> StockConflict:
            return StockConflict(
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=product.name if product is not None else "Unknown product",
                variant_name=variant_name,
                requested=line.quantity,
                available=available,
                conflict_type=kind,
            )

        if product is None:
            conflicts.append(conflict(ConflictType.NOT_FOUND, 0))
            continue
        if not product.is_active:
            conflicts.append(conflict(ConflictType.PRODUCT_INACTIVE, 0))
            continue
        if line.variant_id is not None and (
            variant is None or variant.product_id != product.id
        ):
            conflicts.append(conflict(ConflictType.VARIANT_NOT_FOUND, 0))
            continue

        remaining = max(product.stock_quantity - claimed[product.id], 0)
        if line.quantity <= 0:
            conflicts.append(conflict(ConflictType.INVALID_QUANTITY, remaining))
            continue
        if remaining == 0:
            conflicts.append(conflict(ConflictType.OUT_OF_STOCK, 0))
            continue
        if remaining < line.quantity:
            conflicts.append(conflict(ConflictType.INSUFFICIENT_STOCK, remaining))
            continue

        claimed[product.id] += line.quantity
        resolved.append(
            ResolvedLine(
                line=line,
                product=product,
                variant=variant,
                unit_price=resolve_unit_price(product, variant),
            )
        )

    return conflicts, resolved


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Order number like ``QC-20240102153000-A1B2C3``."""
    now = now or datetime.now(timezone.utc)
    return f"QC-{now.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(3).upper()}"


class OrderPlacementService:
    """
    Runs the placement transaction.

    Attributes:
        session: Session whose transaction the placement runs in
        inventory: Inventory ledger repository
        coupons: Coupon service used for the authoritative re-check
        orders: Order repository
        cart: Server cart repository
        delivery: Delivery service used for auto-assignment
        shop: Shop status consulted before any lock
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        delivery_service: Optional[DeliveryService] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.inventory = InventoryRepository(session)
        self.coupons = CouponService(session)
        self.orders = OrderRepository(session)
        self.cart = CartRepository(session)
        self.delivery = delivery_service or DeliveryService(session, settings=self.settings)
        self.shop = ShopService(session, settings=self.settings)

    async def place_order(
        self,
        user_id: Optional[uuid.UUID],
        delivery_address: Optional[str],
        cart_lines: Sequence[CartLineInput],
        coupon_id: Optional[uuid.UUID] = None,
        coupon_discount: Optional[Decimal] = None,
    ) -> PlacementResult:
        """
        Place an order for ``cart_lines``.

        Args:
            user_id: Customer placing the order
            delivery_address: Free text address, required
            cart_lines: Lines to buy
            coupon_id: Coupon the customer applied, if any
            coupon_discount: Discount the client displayed; advisory only

        Returns:
            PlacementResult with the order id, or the reason and conflicts

        Raises:
            OrderPlacementError: If the database fails mid-transaction. No
                order, stock change or redemption survives.
        """
        if user_id is None:
            return PlacementResult(success=False, error=ERROR_USER_REQUIRED)
        if not delivery_address or not delivery_address.strip():
            return PlacementResult(success=False, error=ERROR_ADDRESS_REQUIRED)
        if not cart_lines:
            return PlacementResult(success=False, error=ERROR_CART_EMPTY)

        with log_performance(
            logger, "place_order", user_id=str(user_id), line_count=len(cart_lines)
        ):
            try:
                return await self._place(
                    user_id,
                    delivery_address.strip(),
                    cart_lines,
                    coupon_id,
                    coupon_discount,
                )
            except (
                SQLAlchemyError,
                InventoryRepositoryError,
                OrderRepositoryError,
                CouponRepositoryError,
                CartRepositoryError,
                DeliveryRepositoryError,
            ) as e:
                await self.session.rollback()
                logger.error(
                    "Order placement rolled back",
                    user_id=str(user_id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise OrderPlacementError(
                    "Order placement failed", user_id=str(user_id)
                ) from e

    async def _place(
        self,
        user_id: uuid.UUID,
        delivery_address: str,
        cart_lines: Sequence[CartLineInput],
        coupon_id: Optional[uuid.UUID],
        coupon_discount: Optional[Decimal],
    ) -> PlacementResult:
        shop_status = await self.shop.get_status()
        if not shop_status.is_open:
            logger.info("Order placement refused, shop closed", user_id=str(user_id))
            return PlacementResult(success=False, error=shop_status.message)

        products = await self.inventory.lock_products(
            line.product_id for line in cart_lines
        )
        variants = await self.inventory.get_variants(
            line.variant_id for line in cart_lines if line.variant_id is not None
        )

        conflicts, resolved = classify_lines(cart_lines, products, variants)
        if conflicts:
            await self.session.rollback()
            logger.info(
                "Order placement blocked by stock conflicts",
                user_id=str(user_id),
                conflicts=[
                    (str(c.product_id), c.conflict_type.value) for c in conflicts
                ],
            )
            return PlacementResult(
                success=False,
                error=ERROR_ITEMS_UNAVAILABLE,
                product_id=conflicts[0].product_id,
                conflicts=conflicts,
            )

        self._log_price_hints(user_id, resolved)
        subtotal = compute_subtotal((r.unit_price, r.line.quantity) for r in resolved)

        discount = ZERO
        coupon = None
        if coupon_id is not None:
            coupon, evaluation = await self.coupons.revalidate_for_placement(
                user_id, coupon_id, subtotal
            )
            if not evaluation.valid:
                await self.session.rollback()
                logger.info(
                    "Order placement blocked by coupon",
                    user_id=str(user_id),
                    coupon_id=str(coupon_id),
                    reason=evaluation.reason,
                )
                return PlacementResult(success=False, error=evaluation.reason)
            discount = evaluation.discount
            if coupon_discount is not None and Decimal(coupon_discount) != discount:
                logger.warning(
                    "Client coupon discount ignored",
                    user_id=str(user_id),
                    coupon_id=str(coupon_id),
                    client_discount=str(coupon_discount),
                    server_discount=str(discount),
                )

        delivery_fee = compute_delivery_fee(
            subtotal, (r.product for r in resolved), self.settings
        )
        total = compute_total(subtotal, discount, delivery_fee)

        order = await self.orders.create_order_with_items(
            user_id=user_id,
            order_number=generate_order_number(),
            delivery_address=delivery_address,
            subtotal=subtotal,
            discount_amount=discount,
            delivery_fee=delivery_fee,
            total_amount=total,
            items=[
                {
                    "product_id": r.product.id,
                    "variant_id": r.variant.id if r.variant is not None else None,
                    "product_name": r.product.name,
                    "quantity": r.line.quantity,
                    "price": r.unit_price,
                }
                for r in resolved
            ],
            coupon_id=coupon.id if coupon is not None else None,
        )

        for product_id, quantity in _quantities_by_product(resolved).items():
            await self.inventory.decrement_stock(product_id, quantity)

        if coupon is not None:
            try:
                await self.coupons.repository.record_usage(user_id, coupon.id, order.id)
            except IntegrityError:
                await self.session.rollback()
                logger.warning(
                    "Coupon redemption collided",
                    user_id=str(user_id),
                    coupon_id=str(coupon.id),
                )
                return PlacementResult(success=False, error=ERROR_COUPON_USED)

        await self.cart.clear_user_cart(user_id)

        courier_id = await self.delivery.auto_assign(order)

        await self.session.commit()

        logger.info(
            "Order placed",
            order_id=str(order.id),
            user_id=str(user_id),
            subtotal=str(subtotal),
            discount=str(discount),
            delivery_fee=str(delivery_fee),
            total=str(total),
            courier_assigned=courier_id is not None,
        )

        return PlacementResult(
            success=True,
            order_id=order.id,
            order_number=order.order_number,
            total=total,
            discount=discount,
            delivery_fee=delivery_fee,
            courier_id=courier_id,
        )

    def _log_price_hints(
        self, user_id: uuid.UUID, resolved: Iterable[ResolvedLine]
    ) -> None:
        for r in resolved:
            hint = r.line.price
            if hint is not None and Decimal(hint) != r.unit_price:
                logger.warning(
                    "Client price differs from catalog price",
                    user_id=str(user_id),
                    product_id=str(r.product.id),
                    client_price=str(hint),
                    catalog_price=str(r.unit_price),
                )


def _quantities_by_product(resolved: Iterable[ResolvedLine]) -> dict[uuid.UUID, int]:
    totals: dict[uuid.UUID, int] = defaultdict(int)
    for r in resolved:
        totals[r.product.id] += r.line.quantity
    return dict(sorted(totals.items(), key=lambda kv: str(kv[0])))
