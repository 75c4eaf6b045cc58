"""
Delivery API endpoints.

Courier actions (pick up, mark delivered), the customer's confirm or
dispute, the staff dispute queue and manual assignment, and courier
activations.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from quickcart.api.deps import CurrentActor, DatabaseSession
from quickcart.core.logging import get_logger
from quickcart.schemas.delivery import (
    ActivationApprovalResponse,
    ActivationResponse,
    AssignCourierRequest,
    DeliveryResponseRequest,
)
from quickcart.schemas.orders import AssignmentResponse
from quickcart.services.delivery.repository import (
    ActivationNotFoundError,
    AssignmentNotFoundError,
)
from quickcart.services.delivery.service import (
    ActivationStateError,
    CourierNotEligibleError,
    DeliveryService,
)
from quickcart.services.orders.repository import OrderNotFoundError
from quickcart.services.orders.state_machine import StateTransitionError

logger = get_logger(__name__)

router = APIRouter(prefix="/delivery", tags=["delivery"])


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _conflict(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get(
    "/assignments",
    response_model=list[AssignmentResponse],
    summary="My assignments (courier)",
)
async def my_assignments(
    actor: CurrentActor,
    db: DatabaseSession,
    include_completed: bool = Query(False),
) -> list[AssignmentResponse]:
    assignments = await DeliveryService(db).courier_assignments(
        actor, include_completed=include_completed
    )
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.post(
    "/orders/{order_id}/pick-up",
    response_model=AssignmentResponse,
    summary="Pick up order (courier)",
)
async def pick_up(order_id: UUID, actor: CurrentActor, db: DatabaseSession) -> AssignmentResponse:
    try:
        assignment = await DeliveryService(db).pick_up(actor, order_id)
    except AssignmentNotFoundError as e:
        raise _not_found(e) from e
    except StateTransitionError as e:
        raise _conflict(e) from e
    return AssignmentResponse.model_validate(assignment)


@router.post(
    "/assignments/{assignment_id}/mark-delivered",
    response_model=AssignmentResponse,
    summary="Mark delivered (courier)",
)
async def mark_delivered(
    assignment_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> AssignmentResponse:
    try:
        assignment = await DeliveryService(db).mark_delivered(actor, assignment_id)
    except AssignmentNotFoundError as e:
        raise _not_found(e) from e
    except StateTransitionError as e:
        raise _conflict(e) from e
    return AssignmentResponse.model_validate(assignment)


@router.post(
    "/assignments/{assignment_id}/respond",
    response_model=AssignmentResponse,
    summary="Confirm or dispute delivery (customer)",
)
async def respond_to_delivery(
    assignment_id: UUID,
    payload: DeliveryResponseRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AssignmentResponse:
    try:
        assignment = await DeliveryService(db).respond_to_delivery(
            actor, assignment_id, payload.accepted, reason=payload.reason
        )
    except AssignmentNotFoundError as e:
        raise _not_found(e) from e
    except StateTransitionError as e:
        raise _conflict(e) from e
    return AssignmentResponse.model_validate(assignment)


@router.get(
    "/disputes",
    response_model=list[AssignmentResponse],
    summary="Disputed deliveries (staff)",
)
async def dispute_queue(actor: CurrentActor, db: DatabaseSession) -> list[AssignmentResponse]:
    assignments = await DeliveryService(db).dispute_queue(actor)
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.post(
    "/orders/{order_id}/assign",
    response_model=AssignmentResponse,
    summary="Assign courier (staff)",
)
async def assign_courier(
    order_id: UUID,
    payload: AssignCourierRequest,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AssignmentResponse:
    try:
        assignment = await DeliveryService(db).assign(actor, order_id, payload.courier_id)
    except OrderNotFoundError as e:
        raise _not_found(e) from e
    except CourierNotEligibleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except StateTransitionError as e:
        raise _conflict(e) from e
    return AssignmentResponse.model_validate(assignment)


@router.post(
    "/activations",
    response_model=ActivationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request today's activation (courier)",
)
async def request_activation(actor: CurrentActor, db: DatabaseSession) -> ActivationResponse:
    activation = await DeliveryService(db).request_activation(actor)
    return ActivationResponse.model_validate(activation)


@router.post(
    "/activations/{activation_id}/approve",
    response_model=ActivationApprovalResponse,
    summary="Approve activation (staff)",
)
async def approve_activation(
    activation_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> ActivationApprovalResponse:
    try:
        activation, assigned = await DeliveryService(db).approve_activation(
            actor, activation_id
        )
    except ActivationNotFoundError as e:
        raise _not_found(e) from e
    except ActivationStateError as e:
        raise _conflict(e) from e
    return ActivationApprovalResponse(
        activation=ActivationResponse.model_validate(activation),
        assigned_order_ids=assigned,
    )


@router.post(
    "/activations/{activation_id}/reject",
    response_model=ActivationResponse,
    summary="Reject activation (staff)",
)
async def reject_activation(
    activation_id: UUID, actor: CurrentActor, db: DatabaseSession
) -> ActivationResponse:
    try:
        activation = await DeliveryService(db).reject_activation(actor, activation_id)
    except ActivationNotFoundError as e:
        raise _not_found(e) from e
    except ActivationStateError as e:
        raise _conflict(e) from e
    return ActivationResponse.model_validate(activation)
