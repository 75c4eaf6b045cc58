"""
Order Pydantic schemas for API request/response validation.

Covers order placement, the structured conflict report returned when
placement is blocked, order reads and status changes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quickcart.services.delivery.enums import DeliveryState
from quickcart.services.orders.enums import ConflictType, OrderStatus
from quickcart.services.orders.placement import CartLineInput, StockConflict


class OrderItemRequest(BaseModel):
    """One cart line submitted at checkout."""

    model_config = ConfigDict(validate_assignment=True)

    product_id: UUID = Field(..., description="Product to buy")
    variant_id: Optional[UUID] = Field(None, description="Selected variant")
    quantity: int = Field(..., le=1000, description="Units requested")
    price: Optional[Decimal] = Field(
        None,
        ge=0,
        decimal_places=2,
        description="Price shown to the customer; informational only",
    )

    def to_line(self) -> CartLineInput:
        return CartLineInput(
            product_id=self.product_id,
            variant_id=self.variant_id,
            quantity=self.quantity,
            price=self.price,
        )


class PlaceOrderRequest(BaseModel):
    """Schema for placing an order."""

    model_config = ConfigDict(
        validate_assignment=True,
        json_schema_extra={
            "example": {
                "delivery_address": "Flat 4B, Lakeview Residency, Indiranagar",
                "items": [
                    {
                        "product_id": "123e4567-e89b-12d3-a456-426614174000",
                        "quantity": 2,
                        "price": "48.00",
                    }
                ],
                "coupon_id": None,
            }
        },
    )

    delivery_address: str = Field(..., max_length=1000)
    items: list[OrderItemRequest] = Field(default_factory=list, max_length=100)
    coupon_id: Optional[UUID] = None
    coupon_discount: Optional[Decimal] = Field(
        None, ge=0, description="Discount shown to the customer; informational only"
    )
    from_guest_cart: bool = Field(
        False, description="Items came from the client-local cart rather than the server cart"
    )


class StockConflictSchema(BaseModel):
    """A cart line that cannot be fulfilled."""

    product_id: UUID
    variant_id: Optional[UUID] = None
    product_name: str = ""
    variant_name: Optional[str] = None
    requested: int = Field(..., ge=0)
    available: int = Field(..., ge=0)
    conflict_type: ConflictType

    @field_validator("conflict_type", mode="before")
    @classmethod
    def parse_conflict_type(cls, v):
        if isinstance(v, str):
            return ConflictType(v.strip().lower())
        return v

    def to_conflict(self) -> StockConflict:
        return StockConflict(
            product_id=self.product_id,
            variant_id=self.variant_id,
            product_name=self.product_name,
            variant_name=self.variant_name,
            requested=self.requested,
            available=self.available,
            conflict_type=self.conflict_type,
        )

    @classmethod
    def from_conflict(cls, conflict: StockConflict) -> "StockConflictSchema":
        return cls(
            product_id=conflict.product_id,
            variant_id=conflict.variant_id,
            product_name=conflict.product_name,
            variant_name=conflict.variant_name,
            requested=conflict.requested,
            available=conflict.available,
            conflict_type=conflict.conflict_type,
        )


class PlacementResponse(BaseModel):
    """Result of a placement attempt."""

    success: bool
    order_id: Optional[UUID] = None
    order_number: Optional[str] = None
    total: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    delivery_fee: Optional[Decimal] = None
    courier_assigned: Optional[bool] = None
    clear_guest_cart: bool = False
    error: Optional[str] = None
    product_id: Optional[UUID] = None
    conflicts: list[StockConflictSchema] = Field(default_factory=list)


class CartLineSchema(BaseModel):
    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity: int

    @classmethod
    def from_line(cls, line: CartLineInput) -> "CartLineSchema":
        return cls(
            product_id=line.product_id,
            variant_id=line.variant_id,
            quantity=line.quantity,
        )


class ConflictResolutionRequest(BaseModel):
    """
    Conflicts from a failed placement plus what is needed to resubmit.

    ``items`` are the lines the failed placement submitted. When present the
    edits apply to them; when absent they apply to the server cart.
    """

    conflicts: list[StockConflictSchema] = Field(..., min_length=1)
    delivery_address: str = Field(..., max_length=1000)
    coupon_id: Optional[UUID] = None
    items: Optional[list[OrderItemRequest]] = Field(None, max_length=100)
    from_guest_cart: bool = False


class ConflictResolutionResponse(BaseModel):
    resubmitted: bool
    placement: Optional[PlacementResponse] = None
    residual_conflicts: list[StockConflictSchema] = Field(default_factory=list)
    items: Optional[list[CartLineSchema]] = None


class OrderItemResponse(BaseModel):
    """Order line with the price paid."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    variant_id: Optional[UUID] = None
    product_name: str
    quantity: int
    price: Decimal
    line_total: Decimal


class AssignmentResponse(BaseModel):
    """Delivery assignment of an order."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    delivery_person_id: Optional[UUID] = None
    state: DeliveryState
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    marked_delivered_at: Optional[datetime] = None
    user_confirmed_at: Optional[datetime] = None
    is_rejected: bool = False
    rejection_reason: Optional[str] = None


class OrderResponse(BaseModel):
    """Order with its items and delivery assignment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    user_id: UUID
    status: OrderStatus
    subtotal: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    coupon_id: Optional[UUID] = None
    delivery_address: str
    items: list[OrderItemResponse] = Field(default_factory=list)
    assignment: Optional[AssignmentResponse] = None
    created_at: datetime
    updated_at: datetime


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdate(BaseModel):
    """Staff status change."""

    model_config = ConfigDict(validate_assignment=True)

    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        if isinstance(v, str):
            return OrderStatus.from_string(v)
        return v
