"""
Payout ledger schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quickcart.services.payouts.enums import PayoutStatus, PayoutType


class PayoutRequest(BaseModel):
    """Schema for recording a payment to a payee."""

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    type: PayoutType
    payee_id: Optional[UUID] = Field(
        None, description="Receiving user; omit when paying the platform"
    )
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        if isinstance(v, str):
            return PayoutType.from_string(v)
        return v


class PayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payer_id: Optional[UUID] = None
    payee_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    amount: Decimal
    type: PayoutType
    status: PayoutStatus
    note: Optional[str] = None
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
