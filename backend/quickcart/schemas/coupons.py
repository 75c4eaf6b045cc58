"""
Coupon validation schemas.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ValidateCouponRequest(BaseModel):
    """Schema for checking a coupon against a cart subtotal."""

    code: str = Field(..., max_length=50)
    subtotal: Decimal = Field(..., decimal_places=2)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip()

    model_config = {
        "json_schema_extra": {
            "example": {
                "code": "SAVE10",
                "subtotal": "600.00",
            }
        }
    }


class CouponValidationResponse(BaseModel):
    valid: bool
    coupon_id: Optional[UUID] = None
    code: Optional[str] = None
    discount: Decimal = Decimal("0.00")
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    description: Optional[str] = None
    error: Optional[str] = None
