"""
Tests for CouponService lookups.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from quickcart.services.coupons.service import (
    REASON_CODE_REQUIRED,
    REASON_INVALID_SUBTOTAL,
    REASON_UNKNOWN_CODE,
    REASON_USER_REQUIRED,
    CouponService,
)


@pytest.fixture
def coupon_service(mock_session) -> CouponService:
    service = CouponService(mock_session)
    service.repository.get_active_by_code = AsyncMock(return_value=None)
    service.repository.get_for_update = AsyncMock(return_value=None)
    service.repository.has_usage = AsyncMock(return_value=False)
    return service


class TestValidateCoupon:
    """Advisory validation from the cart."""

    @pytest.mark.asyncio
    async def test_requires_user(self, coupon_service):
        result = await coupon_service.validate_coupon(None, "SAVE10", Decimal("600"))
        assert result.valid is False
        assert result.error == REASON_USER_REQUIRED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["", "   ", None])
    async def test_requires_code(self, coupon_service, code):
        result = await coupon_service.validate_coupon(uuid.uuid4(), code, Decimal("600"))
        assert result.error == REASON_CODE_REQUIRED

    @pytest.mark.asyncio
    async def test_rejects_non_positive_subtotal(self, coupon_service):
        result = await coupon_service.validate_coupon(uuid.uuid4(), "SAVE10", Decimal("0"))
        assert result.error == REASON_INVALID_SUBTOTAL

    @pytest.mark.asyncio
    async def test_unknown_code(self, coupon_service):
        result = await coupon_service.validate_coupon(uuid.uuid4(), "NOPE", Decimal("600"))
        assert result.valid is False
        assert result.error == REASON_UNKNOWN_CODE

    @pytest.mark.asyncio
    async def test_valid_code_returns_capped_discount(self, coupon_service, make_coupon):
        coupon = make_coupon()
        coupon_service.repository.get_active_by_code.return_value = coupon

        result = await coupon_service.validate_coupon(uuid.uuid4(), "save10", Decimal("600"))

        assert result.valid is True
        assert result.coupon_id == coupon.id
        assert result.discount == Decimal("50.00")
        assert result.discount_type == "percentage"

    @pytest.mark.asyncio
    async def test_minimum_not_met(self, coupon_service, make_coupon):
        coupon_service.repository.get_active_by_code.return_value = make_coupon()

        result = await coupon_service.validate_coupon(uuid.uuid4(), "SAVE10", Decimal("150"))

        assert result.valid is False
        assert result.error.startswith("Minimum order not met")
        assert result.discount == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_previously_redeemed(self, coupon_service, make_coupon):
        coupon_service.repository.get_active_by_code.return_value = make_coupon()
        coupon_service.repository.has_usage.return_value = True

        result = await coupon_service.validate_coupon(uuid.uuid4(), "SAVE10", Decimal("600"))

        assert result.valid is False


class TestRevalidateForPlacement:
    """Authoritative re-check inside placement."""

    @pytest.mark.asyncio
    async def test_missing_coupon(self, coupon_service):
        coupon, evaluation = await coupon_service.revalidate_for_placement(
            uuid.uuid4(), uuid.uuid4(), Decimal("600")
        )
        assert coupon is None
        assert evaluation.valid is False

    @pytest.mark.asyncio
    async def test_uses_fresh_subtotal(self, coupon_service, make_coupon):
        locked = make_coupon()
        coupon_service.repository.get_for_update.return_value = locked

        coupon, evaluation = await coupon_service.revalidate_for_placement(
            uuid.uuid4(), locked.id, Decimal("180")
        )

        assert coupon is locked
        assert evaluation.valid is False
        assert evaluation.shortfall == Decimal("20.00")
