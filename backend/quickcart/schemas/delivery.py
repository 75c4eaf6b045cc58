"""
Delivery schemas: handshake actions, manual assignment and activations.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from quickcart.services.delivery.enums import ActivationStatus


class DeliveryResponseRequest(BaseModel):
    """Customer's answer to a delivery claim."""

    accepted: bool
    reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def strip_reason(self) -> "DeliveryResponseRequest":
        if self.reason is not None:
            self.reason = self.reason.strip() or None
        return self


class AssignCourierRequest(BaseModel):
    courier_id: UUID


class ActivationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    delivery_partner_id: UUID
    activation_date: date
    status: ActivationStatus
    admin_id: Optional[UUID] = None
    approved_until: Optional[datetime] = None
    duration_hours: int


class ActivationApprovalResponse(BaseModel):
    activation: ActivationResponse
    assigned_order_ids: list[UUID] = Field(default_factory=list)
