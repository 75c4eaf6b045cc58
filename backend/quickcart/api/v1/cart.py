"""
Server cart API endpoints, guest cart merge and stock-conflict resolution.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response

from quickcart.api.deps import CurrentActor, DatabaseSession
from quickcart.api.v1.orders import placement_response
from quickcart.core.logging import get_logger
from quickcart.schemas.cart import (
    AddToCartRequest,
    CartItemResponse,
    CartResponse,
    MergeCartRequest,
    MergeCartResponse,
    UpdateCartItemRequest,
)
from quickcart.schemas.orders import (
    CartLineSchema,
    ConflictResolutionRequest,
    ConflictResolutionResponse,
    StockConflictSchema,
)
from quickcart.services.cart.guest import GuestCart
from quickcart.services.cart.service import (
    CartItemNotFoundError,
    CartService,
    CartServiceError,
    CartView,
    ProductUnavailableError,
)
from quickcart.services.conflicts.resolution import ConflictResolver, ResolutionOutcome
from quickcart.services.orders.placement import OrderPlacementError

logger = get_logger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


def cart_response(view: CartView) -> CartResponse:
    return CartResponse(
        lines=view.lines,
        subtotal=view.subtotal,
        delivery_fee=view.delivery_fee,
        estimated_total=view.estimated_total,
    )


def _cart_error(e: CartServiceError) -> HTTPException:
    if isinstance(e, CartItemNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, ProductUnavailableError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail={"code": e.code, "message": str(e)})


@router.get("", response_model=CartResponse, summary="Get cart")
async def get_cart(actor: CurrentActor, db: DatabaseSession) -> CartResponse:
    return cart_response(await CartService(db).get_cart(actor))


@router.post(
    "/items",
    response_model=CartItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add item to cart",
)
async def add_item(
    payload: AddToCartRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> CartItemResponse:
    try:
        line = await CartService(db).add_item(
            actor, payload.product_id, payload.quantity, payload.variant_id
        )
    except CartServiceError as e:
        raise _cart_error(e) from e
    return CartItemResponse.model_validate(line)


@router.patch("/items/{line_id}", summary="Update cart item quantity")
async def update_item(
    line_id: UUID,
    payload: UpdateCartItemRequest,
    actor: CurrentActor,
    db: DatabaseSession,
):
    try:
        line = await CartService(db).update_quantity(actor, line_id, payload.quantity)
    except CartServiceError as e:
        raise _cart_error(e) from e
    if line is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return CartItemResponse.model_validate(line)


@router.delete(
    "/items/{line_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove cart item",
)
async def remove_item(line_id: UUID, actor: CurrentActor, db: DatabaseSession) -> Response:
    try:
        await CartService(db).remove_item(actor, line_id)
    except CartServiceError as e:
        raise _cart_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/merge", response_model=MergeCartResponse, summary="Merge guest cart")
async def merge_guest_cart(
    payload: MergeCartRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> MergeCartResponse:
    """
    Apply the client's choice for its local cart after sign-in.
    """
    service = CartService(db)
    guest_cart = GuestCart.from_items(item.model_dump() for item in payload.items)
    written = await service.merge_guest_cart(actor, guest_cart, payload.strategy)
    return MergeCartResponse(
        strategy=payload.strategy,
        lines_written=written,
        cart=cart_response(await service.get_cart(actor)),
    )


def _resolution_response(
    outcome: ResolutionOutcome, from_guest_cart: bool
) -> ConflictResolutionResponse:
    placement = None
    if outcome.placement is not None:
        placement = placement_response(outcome.placement, from_guest_cart=from_guest_cart)
    return ConflictResolutionResponse(
        resubmitted=outcome.resubmitted,
        placement=placement,
        residual_conflicts=[
            StockConflictSchema.from_conflict(c) for c in outcome.residual_conflicts
        ],
        items=(
            [CartLineSchema.from_line(line) for line in outcome.lines]
            if outcome.lines is not None
            else None
        ),
    )


async def _resolve(
    action: str,
    payload: ConflictResolutionRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> ConflictResolutionResponse:
    resolver = ConflictResolver(db)
    handler = {
        "adjust": resolver.adjust,
        "remove": resolver.remove,
        "fix-all": resolver.fix_all,
    }[action]
    try:
        outcome = await handler(
            actor,
            [c.to_conflict() for c in payload.conflicts],
            payload.delivery_address,
            coupon_id=payload.coupon_id,
            lines=(
                [item.to_line() for item in payload.items]
                if payload.items is not None
                else None
            ),
        )
    except OrderPlacementError as e:
        logger.error("Resubmitted placement failed", user_id=str(actor.id), context=e.context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to place order, please retry",
        ) from e
    return _resolution_response(outcome, from_guest_cart=payload.from_guest_cart)


@router.post(
    "/conflicts/adjust",
    response_model=ConflictResolutionResponse,
    summary="Lower over-asked lines to available stock",
)
async def adjust_conflicts(
    payload: ConflictResolutionRequest, actor: CurrentActor, db: DatabaseSession
) -> ConflictResolutionResponse:
    return await _resolve("adjust", payload, actor, db)


@router.post(
    "/conflicts/remove",
    response_model=ConflictResolutionResponse,
    summary="Remove unavailable lines",
)
async def remove_conflicts(
    payload: ConflictResolutionRequest, actor: CurrentActor, db: DatabaseSession
) -> ConflictResolutionResponse:
    return await _resolve("remove", payload, actor, db)


@router.post(
    "/conflicts/fix-all",
    response_model=ConflictResolutionResponse,
    summary="Remove, adjust and resubmit",
)
async def fix_all_conflicts(
    payload: ConflictResolutionRequest, actor: CurrentActor, db: DatabaseSession
) -> ConflictResolutionResponse:
    return await _resolve("fix-all", payload, actor, db)
