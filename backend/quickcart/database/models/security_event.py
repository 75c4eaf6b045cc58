"""
Security event log, written when an order fails its integrity check.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import ForeignKey, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from quickcart.database.base import BaseModel


class SecurityEvent(BaseModel):
    """
    Suspicious activity attributed to a user, e.g. ``price_manipulation``.
    """

    __tablename__ = "security_events"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
