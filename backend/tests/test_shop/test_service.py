"""
Tests for the shop open/closed switch.
"""

from datetime import datetime, time, timezone
from typing import Optional

import pytest

from quickcart.database.models import SHOP_SETTINGS_ID, ShopSettings, ShopState
from quickcart.services.authorization.policy import AuthorizationError
from quickcart.services.shop.service import (
    ShopService,
    ShopServiceError,
    evaluate_shop_status,
    within_schedule,
)

DEFAULT_MESSAGE = "We are currently closed. Please try again later."


def make_shop(
    status: ShopState = ShopState.OPEN,
    closed_message: Optional[str] = None,
    schedule_enabled: bool = False,
    open_time: time = time(8, 0),
    close_time: time = time(22, 0),
) -> ShopSettings:
    return ShopSettings(
        id=SHOP_SETTINGS_ID,
        status=status,
        closed_message=closed_message,
        schedule_enabled=schedule_enabled,
        scheduled_open_time=open_time,
        scheduled_close_time=close_time,
    )


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 6, 1, hour, minute, tzinfo=timezone.utc)


# ============================================================================
# Status Evaluation
# ============================================================================


class TestEvaluateShopStatus:
    def test_unconfigured_shop_is_open(self):
        status = evaluate_shop_status(None, at(3), DEFAULT_MESSAGE)
        assert status.is_open is True
        assert status.message is None

    def test_closed_with_custom_message(self):
        shop = make_shop(ShopState.CLOSED, closed_message="Stocktaking, back at 6pm")

        status = evaluate_shop_status(shop, at(12), DEFAULT_MESSAGE)

        assert status.is_open is False
        assert status.message == "Stocktaking, back at 6pm"

    def test_closed_falls_back_to_default_message(self):
        status = evaluate_shop_status(make_shop(ShopState.CLOSED), at(12), DEFAULT_MESSAGE)
        assert status.message == DEFAULT_MESSAGE

    def test_schedule_ignored_when_disabled(self):
        status = evaluate_shop_status(make_shop(), at(23, 30), DEFAULT_MESSAGE)
        assert status.is_open is True

    @pytest.mark.parametrize(
        "hour,minute,expected",
        [(7, 59, False), (8, 0, True), (21, 59, True), (22, 0, False)],
    )
    def test_schedule_window(self, hour, minute, expected):
        shop = make_shop(schedule_enabled=True)
        status = evaluate_shop_status(shop, at(hour, minute), DEFAULT_MESSAGE)
        assert status.is_open is expected

    def test_manual_close_wins_inside_window(self):
        shop = make_shop(ShopState.CLOSED, schedule_enabled=True)
        assert evaluate_shop_status(shop, at(12), DEFAULT_MESSAGE).is_open is False


class TestWithinSchedule:
    @pytest.mark.parametrize(
        "now,expected",
        [(time(23, 0), True), (time(1, 30), True), (time(2, 0), False), (time(12, 0), False)],
    )
    def test_window_past_midnight(self, now, expected):
        assert within_schedule(now, time(18, 0), time(2, 0)) is expected


# ============================================================================
# Updates
# ============================================================================


@pytest.fixture
def service(mock_session, settings) -> ShopService:
    return ShopService(mock_session, settings=settings)


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_admin_creates_settings_row(self, service, mock_session, admin):
        mock_session.get.return_value = None

        shop = await service.update_status(
            admin, ShopState.CLOSED, closed_message="  Closed for Diwali  "
        )

        mock_session.add.assert_called_once_with(shop)
        mock_session.commit.assert_awaited_once()
        assert shop.id == SHOP_SETTINGS_ID
        assert shop.status == ShopState.CLOSED
        assert shop.closed_message == "Closed for Diwali"
        assert shop.schedule_enabled is False

    @pytest.mark.asyncio
    async def test_updates_existing_row(self, service, mock_session, admin):
        existing = make_shop(ShopState.CLOSED, closed_message="Back soon")
        mock_session.get.return_value = existing

        shop = await service.update_status(
            admin,
            ShopState.OPEN,
            closed_message="",
            schedule_enabled=True,
            scheduled_open_time=time(7, 0),
        )

        assert shop is existing
        mock_session.add.assert_not_called()
        assert shop.status == ShopState.OPEN
        assert shop.closed_message is None
        assert shop.scheduled_open_time == time(7, 0)
        assert shop.scheduled_close_time == time(22, 0)

    @pytest.mark.asyncio
    async def test_customer_cannot_change_status(self, service, mock_session, customer):
        with pytest.raises(AuthorizationError):
            await service.update_status(customer, ShopState.CLOSED)

        mock_session.get.assert_not_awaited()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_window_is_rejected(self, service, mock_session, admin):
        mock_session.get.return_value = make_shop()

        with pytest.raises(ShopServiceError):
            await service.update_status(
                admin,
                ShopState.OPEN,
                schedule_enabled=True,
                scheduled_open_time=time(9, 0),
                scheduled_close_time=time(9, 0),
            )

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()


class TestGetStatus:
    @pytest.mark.asyncio
    async def test_reads_singleton_row(self, service, mock_session):
        mock_session.get.return_value = make_shop(ShopState.CLOSED)

        status = await service.get_status(now=at(12))

        assert status.is_open is False
        assert status.message == service.settings.shop_closed_message
        assert mock_session.get.await_args.args == (ShopSettings, SHOP_SETTINGS_ID)
