"""
Shop open/closed status.

Placement asks ``ShopService.get_status`` before it takes any lock and
refuses orders while the shop is closed. Staff flip the switch, set the
message customers see, and optionally restrict ordering to a daily window.
"""

from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.config import Settings, get_settings
from quickcart.core.logging import get_logger
from quickcart.database.base import utcnow
from quickcart.database.models import SHOP_SETTINGS_ID, ShopSettings, ShopState
from quickcart.services.authorization.policy import Action, Actor, Policy, get_policy

logger = get_logger(__name__)

DEFAULT_OPEN_TIME = time(8, 0)
DEFAULT_CLOSE_TIME = time(22, 0)


class ShopServiceError(Exception):
    """Raised when a shop status update is invalid."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


@dataclass(frozen=True)
class ShopStatus:
    is_open: bool
    message: Optional[str] = None


def within_schedule(now: time, open_time: time, close_time: time) -> bool:
    """Whether ``now`` falls in the window, which may wrap past midnight."""
    if open_time <= close_time:
        return open_time <= now < close_time
    return now >= open_time or now < close_time


def evaluate_shop_status(
    shop: Optional[ShopSettings],
    now: datetime,
    default_message: str,
) -> ShopStatus:
    """
    Decide whether orders are accepted at ``now``.

    Args:
        shop: Stored settings row, ``None`` when never configured
        now: Current UTC time
        default_message: Message used when the row has none

    Returns:
        ShopStatus with the closed message set when the shop is closed
    """
    if shop is None:
        return ShopStatus(is_open=True)

    message = shop.closed_message or default_message
    if shop.status == ShopState.CLOSED:
        return ShopStatus(is_open=False, message=message)
    if shop.schedule_enabled and not within_schedule(
        now.time(), shop.scheduled_open_time, shop.scheduled_close_time
    ):
        return ShopStatus(is_open=False, message=message)
    return ShopStatus(is_open=True)


class ShopService:
    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        policy: Optional[Policy] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.policy = policy or get_policy()

    async def get_settings_row(self) -> Optional[ShopSettings]:
        return await self.session.get(ShopSettings, SHOP_SETTINGS_ID)

    async def get_status(self, now: Optional[datetime] = None) -> ShopStatus:
        shop = await self.get_settings_row()
        return evaluate_shop_status(
            shop, now or utcnow(), self.settings.shop_closed_message
        )

    async def update_status(
        self,
        actor: Actor,
        status: ShopState,
        closed_message: Optional[str] = None,
        schedule_enabled: Optional[bool] = None,
        scheduled_open_time: Optional[time] = None,
        scheduled_close_time: Optional[time] = None,
    ) -> ShopSettings:
        """
        Open or close the shop.

        Fields left as ``None`` keep their stored value.

        Raises:
            AuthorizationError: If the actor is not staff
            ShopServiceError: If the schedule window is empty
        """
        self.policy.authorize(actor, Action.MANAGE_SHOP)

        shop = await self.get_settings_row()
        if shop is None:
            shop = ShopSettings(
                id=SHOP_SETTINGS_ID,
                status=ShopState.OPEN,
                schedule_enabled=False,
                scheduled_open_time=DEFAULT_OPEN_TIME,
                scheduled_close_time=DEFAULT_CLOSE_TIME,
            )
            self.session.add(shop)

        shop.status = status
        if closed_message is not None:
            shop.closed_message = closed_message.strip() or None
        if schedule_enabled is not None:
            shop.schedule_enabled = schedule_enabled
        if scheduled_open_time is not None:
            shop.scheduled_open_time = scheduled_open_time
        if scheduled_close_time is not None:
            shop.scheduled_close_time = scheduled_close_time

        if shop.schedule_enabled and shop.scheduled_open_time == shop.scheduled_close_time:
            await self.session.rollback()
            raise ShopServiceError(
                "Opening and closing times must differ",
                open_time=shop.scheduled_open_time.isoformat(),
            )

        await self.session.commit()

        logger.info(
            "Shop status updated",
            status=shop.status.value,
            schedule_enabled=shop.schedule_enabled,
            updated_by=str(actor.id),
        )
        return shop
