"""
Shop status schemas.
"""

from datetime import time
from typing import Optional

from pydantic import BaseModel, Field

from quickcart.database.models import ShopState


class ShopStatusResponse(BaseModel):
    is_open: bool
    message: Optional[str] = None


class ShopStatusUpdate(BaseModel):
    """Schema for opening or closing the shop."""

    status: ShopState
    closed_message: Optional[str] = Field(None, max_length=500)
    schedule_enabled: Optional[bool] = None
    scheduled_open_time: Optional[time] = None
    scheduled_close_time: Optional[time] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "closed",
                "closed_message": "Closed for Diwali, back tomorrow at 8am",
            }
        }
    }
