"""
Order pricing rules.

Prices always come from the catalog rows loaded inside the placement
transaction; a price submitted by the client is never used here.
"""

from decimal import Decimal
from typing import Iterable, Optional

from quickcart.core.config import Settings
from quickcart.database.models import Product, ProductVariant
from quickcart.services.coupons.validator import quantize_money

ZERO = Decimal("0.00")


def resolve_unit_price(product: Product, variant: Optional[ProductVariant]) -> Decimal:
    """Variant price wins over the product price."""
    if variant is not None:
        return Decimal(variant.price)
    return Decimal(product.price)


def compute_subtotal(priced_lines: Iterable[tuple[Decimal, int]]) -> Decimal:
    """
    Sum of unit price times quantity.

    Args:
        priced_lines: (unit price, quantity) pairs
    """
    return quantize_money(
        sum((price * quantity for price, quantity in priced_lines), ZERO)
    )


def is_fee_exempt(product: Product, keyword: str) -> bool:
    """
    Whether ``product`` belongs to the fee exempt group.

    Matching is a case-insensitive substring test on the name or category,
    so "Bisleri Water 1L" and category "Drinking Water" both match "water".
    """
    needle = keyword.strip().lower()
    if not needle:
        return False
    haystacks = (product.name or "", product.category or "")
    return any(needle in value.lower() for value in haystacks)


def compute_delivery_fee(
    subtotal: Decimal,
    products: Iterable[Product],
    settings: Settings,
) -> Decimal:
    """
    Delivery fee for an order.

    Free when the subtotal is strictly above the threshold, or when every
    product in the cart is fee exempt. Otherwise the flat fee.
    """
    products = list(products)
    if subtotal > settings.free_delivery_threshold:
        return ZERO
    if products and all(
        is_fee_exempt(product, settings.fee_exempt_keyword) for product in products
    ):
        return ZERO
    return quantize_money(settings.delivery_fee)


def compute_total(subtotal: Decimal, discount: Decimal, delivery_fee: Decimal) -> Decimal:
    """Amount charged; never negative."""
    return quantize_money(max(subtotal - discount + delivery_fee, ZERO))
