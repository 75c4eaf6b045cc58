"""
Inventory API endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from quickcart.api.deps import CurrentActor, DatabaseSession
from quickcart.schemas.inventory import RestockRequest, StockResponse
from quickcart.services.inventory.repository import ProductNotFoundError
from quickcart.services.inventory.service import InventoryService, InventoryServiceError

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.post(
    "/products/{product_id}/restock",
    response_model=StockResponse,
    summary="Restock product (staff)",
)
async def restock_product(
    product_id: UUID,
    payload: RestockRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> StockResponse:
    try:
        stock = await InventoryService(db).restock(actor, product_id, payload.quantity)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InventoryServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return StockResponse(product_id=product_id, stock_quantity=stock)


@router.get(
    "/products/{product_id}/stock",
    response_model=StockResponse,
    summary="Current stock level",
)
async def get_product_stock(product_id: UUID, db: DatabaseSession) -> StockResponse:
    try:
        stock = await InventoryService(db).get_stock(product_id)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return StockResponse(product_id=product_id, stock_quantity=stock)
