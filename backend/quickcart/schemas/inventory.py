"""
Inventory schemas.
"""

from uuid import UUID

from pydantic import BaseModel, Field


class RestockRequest(BaseModel):
    quantity: int = Field(..., gt=0, le=100000)


class StockResponse(BaseModel):
    product_id: UUID
    stock_quantity: int
