"""
Stock-conflict resolution.

When placement comes back with conflicts, the customer either trims the
over-asked lines down to what is left (adjust), drops the lines that cannot
be bought at all (remove), or both (fix all). Once no conflict of either
kind is left, the order is resubmitted automatically.

The edits apply to the lines the client submitted when it sends them back,
and to the server cart otherwise. A client placing from its local cart
must send its lines, since nothing of that cart exists server side.

All edits write absolute quantities or delete existing lines, so running an
action twice leaves the cart as running it once.
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from quickcart.core.logging import get_logger
from quickcart.services.authorization.policy import Action, Actor, Resource
from quickcart.services.cart.service import CartService
from quickcart.services.orders.enums import ConflictType
from quickcart.services.orders.placement import (
    CartLineInput,
    OrderPlacementService,
    PlacementResult,
    StockConflict,
)

logger = get_logger(__name__)

_REMOVABLE_TYPES = {
    ConflictType.NOT_FOUND,
    ConflictType.PRODUCT_INACTIVE,
    ConflictType.VARIANT_NOT_FOUND,
    ConflictType.OUT_OF_STOCK,
    ConflictType.INVALID_QUANTITY,
}


def is_removable(conflict: StockConflict) -> bool:
    return conflict.conflict_type in _REMOVABLE_TYPES or conflict.available <= 0


def classify_conflicts(
    conflicts: Iterable[StockConflict],
) -> tuple[list[StockConflict], list[StockConflict]]:
    """
    Split conflicts into (removable, adjustable).

    Every conflict lands in exactly one of the two lists.
    """
    removable: list[StockConflict] = []
    adjustable: list[StockConflict] = []
    for conflict in conflicts:
        if is_removable(conflict):
            removable.append(conflict)
        else:
            adjustable.append(conflict)
    return removable, adjustable


def remove_submitted_lines(
    lines: Sequence[CartLineInput], removable: Iterable[StockConflict]
) -> list[CartLineInput]:
    keys = {(c.product_id, c.variant_id) for c in removable}
    return [line for line in lines if (line.product_id, line.variant_id) not in keys]


def adjust_submitted_lines(
    lines: Sequence[CartLineInput], adjustable: Iterable[StockConflict]
) -> list[CartLineInput]:
    """Set each conflicting line to its available quantity, dropping zeros."""
    available = {(c.product_id, c.variant_id): c.available for c in adjustable}
    adjusted: list[CartLineInput] = []
    for line in lines:
        key = (line.product_id, line.variant_id)
        if key in available:
            if available[key] <= 0:
                continue
            line = replace(line, quantity=available[key])
        adjusted.append(line)
    return adjusted


@dataclass
class ResolutionOutcome:
    """
    Result of one resolution action.

    Attributes:
        resubmitted: Whether placement was attempted again
        placement: Result of the resubmission, if any
        residual_conflicts: Conflicts the action did not address
        lines: The submitted lines after the edits; ``None`` when the
            server cart was edited instead
    """

    resubmitted: bool
    placement: Optional[PlacementResult] = None
    residual_conflicts: list[StockConflict] = field(default_factory=list)
    lines: Optional[list[CartLineInput]] = None


class ConflictResolver:
    """
    Applies resolution actions to submitted lines or the server cart.
    """

    def __init__(
        self,
        session: AsyncSession,
        cart_service: Optional[CartService] = None,
        placement_service: Optional[OrderPlacementService] = None,
    ):
        self.session = session
        self.cart = cart_service or CartService(session)
        self.placement = placement_service or OrderPlacementService(session)

    async def adjust(
        self,
        actor: Actor,
        conflicts: Iterable[StockConflict],
        delivery_address: str,
        coupon_id: Optional[uuid.UUID] = None,
        lines: Optional[Sequence[CartLineInput]] = None,
    ) -> ResolutionOutcome:
        """Lower each adjustable line to its available quantity."""
        removable, adjustable = self._start(actor, conflicts)
        if lines is None:
            await self._adjust_lines(actor.id, adjustable)
            await self.session.commit()
        else:
            lines = adjust_submitted_lines(lines, adjustable)
        return await self._finish(
            actor, "adjust", removable, delivery_address, coupon_id, lines
        )

    async def remove(
        self,
        actor: Actor,
        conflicts: Iterable[StockConflict],
        delivery_address: str,
        coupon_id: Optional[uuid.UUID] = None,
        lines: Optional[Sequence[CartLineInput]] = None,
    ) -> ResolutionOutcome:
        """Delete every removable line."""
        removable, adjustable = self._start(actor, conflicts)
        if lines is None:
            await self._remove_lines(actor.id, removable)
            await self.session.commit()
        else:
            lines = remove_submitted_lines(lines, removable)
        return await self._finish(
            actor, "remove", adjustable, delivery_address, coupon_id, lines
        )

    async def fix_all(
        self,
        actor: Actor,
        conflicts: Iterable[StockConflict],
        delivery_address: str,
        coupon_id: Optional[uuid.UUID] = None,
        lines: Optional[Sequence[CartLineInput]] = None,
    ) -> ResolutionOutcome:
        """Remove, then adjust, then resubmit."""
        removable, adjustable = self._start(actor, conflicts)
        if lines is None:
            await self._remove_lines(actor.id, removable)
            await self._adjust_lines(actor.id, adjustable)
            await self.session.commit()
        else:
            lines = adjust_submitted_lines(
                remove_submitted_lines(lines, removable), adjustable
            )
        return await self._finish(actor, "fix_all", [], delivery_address, coupon_id, lines)

    def _start(
        self, actor: Actor, conflicts: Iterable[StockConflict]
    ) -> tuple[list[StockConflict], list[StockConflict]]:
        self.cart.policy.authorize(actor, Action.MANAGE_CART, Resource(owner_id=actor.id))
        return classify_conflicts(conflicts)

    async def _adjust_lines(
        self, user_id: uuid.UUID, adjustable: Iterable[StockConflict]
    ) -> None:
        for conflict in adjustable:
            await self.cart.set_line_quantity(
                user_id, conflict.product_id, conflict.variant_id, conflict.available
            )

    async def _remove_lines(
        self, user_id: uuid.UUID, removable: Iterable[StockConflict]
    ) -> None:
        for conflict in removable:
            await self.cart.remove_line(user_id, conflict.product_id, conflict.variant_id)

    async def _finish(
        self,
        actor: Actor,
        action: str,
        residual: list[StockConflict],
        delivery_address: str,
        coupon_id: Optional[uuid.UUID],
        submitted: Optional[Sequence[CartLineInput]],
    ) -> ResolutionOutcome:
        submitted = list(submitted) if submitted is not None else None
        if residual:
            logger.info(
                "Conflicts remain after resolution",
                user_id=str(actor.id),
                action=action,
                residual=len(residual),
            )
            return ResolutionOutcome(
                resubmitted=False, residual_conflicts=residual, lines=submitted
            )

        if submitted is None:
            lines = await self.cart.get_placement_lines(actor.id)
        else:
            lines = submitted
        result = await self.placement.place_order(
            actor.id, delivery_address, lines, coupon_id=coupon_id
        )
        logger.info(
            "Placement resubmitted after resolution",
            user_id=str(actor.id),
            action=action,
            source="server_cart" if submitted is None else "submitted_lines",
            success=result.success,
        )
        return ResolutionOutcome(
            resubmitted=True,
            placement=result,
            residual_conflicts=list(result.conflicts),
            lines=submitted,
        )
