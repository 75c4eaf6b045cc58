"""
Shop open/closed switch.

A single row keyed by ``SHOP_SETTINGS_ID``. When the row is missing the
shop counts as open.
"""

import uuid
from datetime import time
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from quickcart.database.base import BaseModel, enum_values

SHOP_SETTINGS_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


class ShopState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ShopSettings(BaseModel):
    """
    Whether the shop accepts orders, and what closed customers are told.

    With ``schedule_enabled`` an open shop only takes orders between
    ``scheduled_open_time`` and ``scheduled_close_time`` (UTC).
    """

    __tablename__ = "shop_settings"

    status: Mapped[ShopState] = mapped_column(
        SQLEnum(ShopState, name="shop_state", values_callable=enum_values),
        nullable=False,
        default=ShopState.OPEN,
    )
    closed_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    schedule_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    scheduled_open_time: Mapped[time] = mapped_column(
        Time, nullable=False, default=time(8, 0)
    )
    scheduled_close_time: Mapped[time] = mapped_column(
        Time, nullable=False, default=time(22, 0)
    )
