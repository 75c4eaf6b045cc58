"""
Commission and payout ledger.

Every delivered order earns a developer commission (owed to the platform
developer, payee NULL) and a delivery commission (owed to the courier).
Accrual runs from the order state machine's DELIVERED handler and is
idempotent per (order, commission type).

Payouts are resolved by their receiving side only: the payee approves or
rejects, or a super admin does so when the payee is the platform. The party
that requested a payout can never resolve it.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.config import Settings, get_settings
from quickcart.core.logging import get_logger
from quickcart.database.base import utcnow
from quickcart.database.models import Order, Payout
from quickcart.services.authorization.policy import (
    Action,
    Actor,
    Policy,
    Resource,
    get_policy,
)
from quickcart.services.payouts.enums import (
    PayoutStatus,
    PayoutType,
    validate_payout_status_transition,
)
from quickcart.services.payouts.repository import PayoutRepository

logger = get_logger(__name__)


class PayoutServiceError(Exception):
    """Base exception for payout service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class PayoutStateError(PayoutServiceError):
    """Raised when resolving a payout that is no longer pending."""

    pass


class PayoutService:
    """
    Accrues commissions and resolves payouts.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        policy: Optional[Policy] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repository = PayoutRepository(session)
        self.policy = policy or get_policy()

    async def accrue_commissions(
        self,
        order: Order,
        courier_id: Optional[uuid.UUID],
    ) -> list[Payout]:
        """
        Create the commission payouts for a delivered order.

        Commission types already present for the order are skipped, so
        replaying the delivery event adds nothing. The delivery commission is
        only accrued when a courier delivered the order.

        Args:
            order: Order that just became DELIVERED
            courier_id: Courier who delivered it, if any

        Returns:
            Newly created payouts
        """
        existing = await self.repository.get_accrued_types(order.id)

        wanted: list[tuple[PayoutType, Decimal, Optional[uuid.UUID]]] = [
            (PayoutType.DEVELOPER_COMMISSION, self.settings.developer_commission, None),
        ]
        if courier_id is not None:
            wanted.append(
                (PayoutType.DELIVERY_COMMISSION, self.settings.delivery_commission, courier_id)
            )

        created = []
        for payout_type, amount, payee_id in wanted:
            if payout_type in existing or amount <= 0:
                continue
            created.append(
                await self.repository.create(
                    amount=amount,
                    payout_type=payout_type,
                    payer_id=None,
                    payee_id=payee_id,
                    order_id=order.id,
                    note=f"Commission for order {order.order_number}",
                )
            )

        logger.info(
            "Commissions accrued",
            order_id=str(order.id),
            created=[p.type.value for p in created],
            skipped=sorted(t.value for t in existing),
        )
        return created

    async def request_payout(
        self,
        actor: Actor,
        amount: Decimal,
        payout_type: PayoutType,
        payee_id: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
    ) -> Payout:
        """
        Record a payment the actor made or owes to ``payee_id``.

        The payout starts PENDING until the payee confirms it.

        Raises:
            AuthorizationError: If the actor may not request payouts
            PayoutServiceError: If the amount is not positive or the actor
                names themself as payee
        """
        self.policy.authorize(
            actor, Action.REQUEST_PAYOUT, Resource(owner_id=payee_id, requester_id=actor.id)
        )
        if amount <= 0:
            raise PayoutServiceError("Payout amount must be positive", amount=str(amount))
        if payee_id == actor.id:
            raise PayoutServiceError("Cannot request a payout to yourself")

        payout = await self.repository.create(
            amount=amount,
            payout_type=payout_type,
            payer_id=actor.id,
            payee_id=payee_id,
            note=note,
        )
        await self.session.commit()

        logger.info(
            "Payout requested",
            payout_id=str(payout.id),
            payer_id=str(actor.id),
            payee_id=str(payee_id) if payee_id else None,
            amount=str(amount),
            payout_type=payout_type.value,
        )
        return payout

    async def approve_payout(self, actor: Actor, payout_id: uuid.UUID) -> Payout:
        return await self._resolve(actor, payout_id, PayoutStatus.APPROVED)

    async def reject_payout(self, actor: Actor, payout_id: uuid.UUID) -> Payout:
        return await self._resolve(actor, payout_id, PayoutStatus.REJECTED)

    async def list_payouts(
        self, actor: Actor, status: Optional[PayoutStatus] = None
    ) -> list[Payout]:
        return await self.repository.list_for_user(
            actor.id, status=status, include_platform=actor.is_staff
        )

    async def _resolve(
        self, actor: Actor, payout_id: uuid.UUID, target: PayoutStatus
    ) -> Payout:
        payout = await self.repository.get(payout_id, for_update=True)
        self.policy.authorize(
            actor,
            Action.RESOLVE_PAYOUT,
            Resource(owner_id=payout.payee_id, requester_id=payout.payer_id),
        )

        if payout.status == target:
            return payout
        if not validate_payout_status_transition(payout.status, target):
            raise PayoutStateError(
                f"Payout is already {payout.status.value}",
                payout_id=str(payout_id),
                current_status=payout.status.value,
                target_status=target.value,
            )

        payout.status = target
        payout.resolved_by = actor.id
        payout.resolved_at = utcnow()
        await self.session.commit()

        logger.info(
            "Payout resolved",
            payout_id=str(payout_id),
            status=target.value,
            resolved_by=str(actor.id),
        )
        return payout
