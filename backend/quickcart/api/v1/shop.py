"""
Shop status API endpoints.
"""

from fastapi import APIRouter, HTTPException, status

from quickcart.api.deps import CurrentActor, DatabaseSession
from quickcart.schemas.shop import ShopStatusResponse, ShopStatusUpdate
from quickcart.services.shop.service import ShopService, ShopServiceError

router = APIRouter(prefix="/shop", tags=["shop"])


@router.get("/status", response_model=ShopStatusResponse, summary="Is the shop open")
async def get_shop_status(db: DatabaseSession) -> ShopStatusResponse:
    shop_status = await ShopService(db).get_status()
    return ShopStatusResponse(is_open=shop_status.is_open, message=shop_status.message)


@router.put(
    "/status",
    response_model=ShopStatusResponse,
    summary="Open or close the shop (staff)",
)
async def update_shop_status(
    payload: ShopStatusUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> ShopStatusResponse:
    service = ShopService(db)
    try:
        await service.update_status(
            actor,
            payload.status,
            closed_message=payload.closed_message,
            schedule_enabled=payload.schedule_enabled,
            scheduled_open_time=payload.scheduled_open_time,
            scheduled_close_time=payload.scheduled_close_time,
        )
    except ShopServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    shop_status = await service.get_status()
    return ShopStatusResponse(is_open=shop_status.is_open, message=shop_status.message)
