"""
Order API endpoints.

Placement is one call: the client never checks stock and creates the order
in separate requests. A blocked placement answers 409 with the conflict
report the client feeds into the resolution endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from quickcart.api.deps import CurrentActor, DatabaseSession
from quickcart.core.config import get_settings
from quickcart.core.logging import get_logger
from quickcart.core.rate_limit import limiter
from quickcart.schemas.orders import (
    CancelOrderRequest,
    OrderResponse,
    OrderStatusUpdate,
    PlaceOrderRequest,
    PlacementResponse,
    StockConflictSchema,
)
from quickcart.services.authorization.policy import Action, Resource, get_policy
from quickcart.services.orders.placement import (
    OrderPlacementError,
    OrderPlacementService,
    PlacementResult,
)
from quickcart.services.orders.repository import OrderNotFoundError
from quickcart.services.orders.service import OrderService
from quickcart.services.orders.state_machine import StateTransitionError

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/orders", tags=["orders"])


def placement_response(
    result: PlacementResult, from_guest_cart: bool = False
) -> PlacementResponse:
    if result.success:
        return PlacementResponse(
            success=True,
            order_id=result.order_id,
            order_number=result.order_number,
            total=result.total,
            discount=result.discount,
            delivery_fee=result.delivery_fee,
            courier_assigned=result.courier_id is not None,
            clear_guest_cart=from_guest_cart,
        )
    return PlacementResponse(
        success=False,
        error=result.error,
        product_id=result.product_id,
        conflicts=[StockConflictSchema.from_conflict(c) for c in result.conflicts],
    )


def placement_status_code(result: PlacementResult) -> int:
    if result.success:
        return status.HTTP_201_CREATED
    if result.conflicts:
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


@router.post(
    "",
    response_model=PlacementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    responses={
        409: {"model": PlacementResponse, "description": "Stock conflicts"},
        400: {"model": PlacementResponse, "description": "Order rejected"},
    },
)
@limiter.limit(settings.placement_rate_limit)
async def place_order(
    request: Request,
    payload: PlaceOrderRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> JSONResponse:
    """
    Place an order atomically.

    Returns:
        201 with the order id, 409 with conflicts, or 400 with the reason

    Raises:
        HTTPException: 500 if the transaction failed and was rolled back
    """
    get_policy().authorize(actor, Action.PLACE_ORDER, Resource(owner_id=actor.id))

    try:
        result = await OrderPlacementService(db, settings=settings).place_order(
            user_id=actor.id,
            delivery_address=payload.delivery_address,
            cart_lines=[item.to_line() for item in payload.items],
            coupon_id=payload.coupon_id,
            coupon_discount=payload.coupon_discount,
        )
    except OrderPlacementError as e:
        logger.error("Order placement failed", user_id=str(actor.id), context=e.context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to place order, please retry",
        ) from e

    body = placement_response(result, from_guest_cart=payload.from_guest_cart)
    return JSONResponse(
        status_code=placement_status_code(result),
        content=body.model_dump(mode="json"),
    )


@router.get("", response_model=list[OrderResponse], summary="List my orders")
async def list_orders(
    actor: CurrentActor,
    db: DatabaseSession,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> list[OrderResponse]:
    orders = await OrderService(db).list_orders(actor, limit=limit, offset=offset)
    return [OrderResponse.model_validate(order) for order in orders]


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
async def get_order(
    order_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> OrderResponse:
    try:
        order = await OrderService(db).get_order(actor, order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel order")
async def cancel_order(
    order_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    payload: CancelOrderRequest | None = None,
) -> OrderResponse:
    """
    Cancel an order; its stock is restored once.

    Raises:
        HTTPException: 404 if not found, 409 if it can no longer be cancelled
    """
    reason = payload.reason if payload else None
    try:
        order = await OrderService(db).cancel_order(actor, order_id, reason=reason)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except StateTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status (staff)",
)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> OrderResponse:
    try:
        order = await OrderService(db).update_status(
            actor, order_id, payload.status, reason=payload.reason
        )
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except StateTransitionError as e:
        logger.warning(
            "Status update rejected",
            order_id=str(order_id),
            target=payload.status.value,
            context=e.context,
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return OrderResponse.model_validate(order)
