"""
Payout ledger API endpoints.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from quickcart.api.deps import CurrentActor, DatabaseSession
from quickcart.schemas.payouts import PayoutRequest, PayoutResponse
from quickcart.services.payouts.enums import PayoutStatus
from quickcart.services.payouts.repository import PayoutNotFoundError
from quickcart.services.payouts.service import (
    PayoutService,
    PayoutServiceError,
    PayoutStateError,
)

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.post(
    "",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request payout",
)
async def request_payout(
    payload: PayoutRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> PayoutResponse:
    try:
        payout = await PayoutService(db).request_payout(
            actor,
            payload.amount,
            payload.type,
            payee_id=payload.payee_id,
            note=payload.note,
        )
    except PayoutServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return PayoutResponse.model_validate(payout)


@router.get("", response_model=list[PayoutResponse], summary="List payouts")
async def list_payouts(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: Optional[PayoutStatus] = Query(None, alias="status"),
) -> list[PayoutResponse]:
    payouts = await PayoutService(db).list_payouts(actor, status=status_filter)
    return [PayoutResponse.model_validate(p) for p in payouts]


async def _resolve(
    payout_id: UUID, actor: CurrentActor, db: DatabaseSession, approve: bool
) -> PayoutResponse:
    service = PayoutService(db)
    try:
        if approve:
            payout = await service.approve_payout(actor, payout_id)
        else:
            payout = await service.reject_payout(actor, payout_id)
    except PayoutNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except PayoutStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return PayoutResponse.model_validate(payout)


@router.post("/{payout_id}/approve", response_model=PayoutResponse, summary="Approve payout")
async def approve_payout(
    payout_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> PayoutResponse:
    return await _resolve(payout_id, actor, db, approve=True)


@router.post("/{payout_id}/reject", response_model=PayoutResponse, summary="Reject payout")
async def reject_payout(
    payout_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> PayoutResponse:
    return await _resolve(payout_id, actor, db, approve=False)
