"""
Cart schemas for server cart and guest cart merge requests.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quickcart.services.cart.guest import MergeStrategy


class AddToCartRequest(BaseModel):
    """Schema for adding items to the cart."""

    product_id: UUID = Field(..., description="Product to add")
    variant_id: Optional[UUID] = Field(None, description="Selected variant")
    quantity: int = Field(default=1, ge=1, le=100)

    model_config = {
        "json_schema_extra": {
            "example": {
                "product_id": "123e4567-e89b-12d3-a456-426614174000",
                "variant_id": None,
                "quantity": 1,
            }
        }
    }


class UpdateCartItemRequest(BaseModel):
    """Schema for updating a cart line. Zero removes the line."""

    quantity: int = Field(..., ge=0, le=100)


class CartLineResponse(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: Optional[UUID] = None
    product_name: str
    variant_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    available: int


class CartResponse(BaseModel):
    """Priced cart; totals are estimates until the order is placed."""

    lines: list[CartLineResponse] = Field(default_factory=list)
    subtotal: Decimal
    delivery_fee: Decimal
    estimated_total: Decimal


class CartItemResponse(BaseModel):
    """A single stored cart line."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity: int


class GuestCartItem(BaseModel):
    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity: int = Field(default=1, le=100)


class MergeCartRequest(BaseModel):
    """Guest cart posted by the client after sign-in."""

    items: list[GuestCartItem] = Field(default_factory=list, max_length=100)
    strategy: MergeStrategy = MergeStrategy.MERGE

    @field_validator("strategy", mode="before")
    @classmethod
    def parse_strategy(cls, v):
        if isinstance(v, str):
            return MergeStrategy(v.strip().lower())
        return v


class MergeCartResponse(BaseModel):
    strategy: MergeStrategy
    lines_written: int
    cart: CartResponse
