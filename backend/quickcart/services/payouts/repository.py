"""
Payout ledger data access.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.database.models import Payout
from quickcart.services.payouts.enums import PayoutStatus, PayoutType

logger = get_logger(__name__)


class PayoutRepositoryError(Exception):
    """Base exception for payout repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class PayoutNotFoundError(PayoutRepositoryError):
    """Raised when a payout does not exist."""

    pass


class PayoutRepository:
    """
    Repository for payouts.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        amount: Decimal,
        payout_type: PayoutType,
        payer_id: Optional[uuid.UUID] = None,
        payee_id: Optional[uuid.UUID] = None,
        order_id: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
    ) -> Payout:
        payout = Payout(
            amount=amount,
            type=payout_type,
            status=PayoutStatus.PENDING,
            payer_id=payer_id,
            payee_id=payee_id,
            order_id=order_id,
            note=note,
        )
        self.session.add(payout)
        await self.session.flush()
        return payout

    async def get(self, payout_id: uuid.UUID, for_update: bool = False) -> Payout:
        """
        Raises:
            PayoutNotFoundError: If the payout does not exist
        """
        stmt = select(Payout).where(Payout.id == payout_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        payout = result.scalar_one_or_none()
        if payout is None:
            raise PayoutNotFoundError("Payout not found", payout_id=str(payout_id))
        return payout

    async def get_accrued_types(self, order_id: uuid.UUID) -> set[PayoutType]:
        """Commission types already accrued for an order."""
        result = await self.session.execute(
            select(Payout.type).where(Payout.order_id == order_id)
        )
        return set(result.scalars().all())

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        status: Optional[PayoutStatus] = None,
        include_platform: bool = False,
    ) -> list[Payout]:
        """
        Payouts the user pays or receives, newest first.

        Args:
            user_id: Payer or payee
            status: Optional status filter
            include_platform: Also include payouts whose payee is the platform
        """
        parties = [Payout.payer_id == user_id, Payout.payee_id == user_id]
        if include_platform:
            parties.append(Payout.payee_id.is_(None))

        stmt = select(Payout).where(or_(*parties))
        if status is not None:
            stmt = stmt.where(Payout.status == status)
        result = await self.session.execute(stmt.order_by(Payout.created_at.desc()))
        return list(result.scalars().all())
