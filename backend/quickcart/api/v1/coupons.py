"""
Coupon API endpoints.
"""

from fastapi import APIRouter

from quickcart.api.deps import CurrentActor, DatabaseSession
from quickcart.schemas.coupons import CouponValidationResponse, ValidateCouponRequest
from quickcart.services.authorization.policy import Action, Resource, get_policy
from quickcart.services.coupons.service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post(
    "/validate",
    response_model=CouponValidationResponse,
    summary="Validate coupon",
    description="Check a coupon against the cart subtotal. The discount shown "
    "is advisory; it is recomputed when the order is placed.",
)
async def validate_coupon(
    payload: ValidateCouponRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> CouponValidationResponse:
    get_policy().authorize(actor, Action.VALIDATE_COUPON, Resource(owner_id=actor.id))
    result = await CouponService(db).validate_coupon(actor.id, payload.code, payload.subtotal)
    return CouponValidationResponse(
        valid=result.valid,
        coupon_id=result.coupon_id,
        code=result.code,
        discount=result.discount,
        discount_type=result.discount_type,
        discount_value=result.discount_value,
        description=result.description,
        error=result.error,
    )
