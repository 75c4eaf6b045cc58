"""
Tests for order pricing rules.
"""

from decimal import Decimal

from quickcart.services.orders.pricing import (
    compute_delivery_fee,
    compute_subtotal,
    compute_total,
    is_fee_exempt,
    resolve_unit_price,
)


class TestUnitPrice:
    def test_product_price_without_variant(self, make_product):
        product = make_product(price="42.50")
        assert resolve_unit_price(product, None) == Decimal("42.50")

    def test_variant_price_wins(self, make_product, make_variant):
        product = make_product(price="100.00")
        variant = make_variant(product, price="55.00")
        assert resolve_unit_price(product, variant) == Decimal("55.00")


class TestSubtotalAndTotal:
    def test_subtotal(self):
        lines = [(Decimal("100.00"), 2), (Decimal("12.25"), 3)]
        assert compute_subtotal(lines) == Decimal("236.75")

    def test_empty_subtotal(self):
        assert compute_subtotal([]) == Decimal("0.00")

    def test_total(self):
        assert compute_total(
            Decimal("250.00"), Decimal("25.00"), Decimal("35.00")
        ) == Decimal("260.00")

    def test_total_never_negative(self):
        assert compute_total(Decimal("10"), Decimal("50"), Decimal("0")) == Decimal("0.00")


class TestDeliveryFee:
    """Flat fee, free above the threshold or for an all-exempt cart."""

    def test_flat_fee_at_threshold(self, settings, make_product):
        fee = compute_delivery_fee(Decimal("200.00"), [make_product()], settings)
        assert fee == Decimal("35.00")

    def test_free_strictly_above_threshold(self, settings, make_product):
        fee = compute_delivery_fee(Decimal("200.01"), [make_product()], settings)
        assert fee == Decimal("0.00")

    def test_free_for_water_only_cart(self, settings, make_product):
        products = [
            make_product(name="Bisleri Water 1L", category="Beverages"),
            make_product(name="Aquafina", category="Drinking Water"),
        ]
        assert compute_delivery_fee(Decimal("40.00"), products, settings) == Decimal("0.00")

    def test_charged_for_mixed_cart(self, settings, make_product):
        products = [
            make_product(name="Bisleri Water 1L"),
            make_product(name="Bread", category="Bakery"),
        ]
        assert compute_delivery_fee(Decimal("80.00"), products, settings) == Decimal("35.00")

    def test_fee_exempt_matching_is_case_insensitive(self, make_product):
        assert is_fee_exempt(make_product(name="KINLEY WATER"), "water")
        assert not is_fee_exempt(make_product(name="Milk", category="Dairy"), "water")
        assert not is_fee_exempt(make_product(name="Water"), "  ")
