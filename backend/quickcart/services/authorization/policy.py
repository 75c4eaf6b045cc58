"""
Authorization policy for the fulfillment engine.

Every core operation asks the policy whether an actor may perform an action
on a resource before touching the database. A rule sees the actor's role and
how the actor relates to the resource: whether they own it, whether they are
the courier it is assigned to, or whether they requested it.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from quickcart.core.logging import get_logger
from quickcart.database.models.user import UserRole

logger = get_logger(__name__)


class AuthorizationError(Exception):
    """Raised when an actor is not allowed to perform an action."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class Action(str, Enum):
    """Operations guarded by the policy."""

    PLACE_ORDER = "place_order"
    VIEW_ORDER = "view_order"
    CANCEL_ORDER = "cancel_order"
    UPDATE_ORDER_STATUS = "update_order_status"
    MANAGE_CART = "manage_cart"
    VALIDATE_COUPON = "validate_coupon"
    ASSIGN_COURIER = "assign_courier"
    PICK_UP_ORDER = "pick_up_order"
    MARK_DELIVERED = "mark_delivered"
    RESPOND_TO_DELIVERY = "respond_to_delivery"
    VIEW_DISPUTES = "view_disputes"
    REQUEST_ACTIVATION = "request_activation"
    RESOLVE_ACTIVATION = "resolve_activation"
    REQUEST_PAYOUT = "request_payout"
    RESOLVE_PAYOUT = "resolve_payout"
    VIEW_PAYOUT = "view_payout"
    RESTOCK_INVENTORY = "restock_inventory"
    MANAGE_SHOP = "manage_shop"


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""

    id: uuid.UUID
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff()


@dataclass(frozen=True)
class Resource:
    """
    How a resource relates to its users.

    Attributes:
        owner_id: Customer owning an order or cart, or the payee of a payout.
            ``None`` on a payout means the platform.
        assignee_id: Courier bound to the order
        requester_id: User who opened the request, e.g. the payer of a payout
    """

    owner_id: Optional[uuid.UUID] = None
    assignee_id: Optional[uuid.UUID] = None
    requester_id: Optional[uuid.UUID] = None


Rule = Callable[[Actor, Resource], bool]


def _is_owner(actor: Actor, resource: Resource) -> bool:
    return resource.owner_id is not None and resource.owner_id == actor.id


def _is_assigned_courier(actor: Actor, resource: Resource) -> bool:
    return (
        actor.role == UserRole.DELIVERY
        and resource.assignee_id is not None
        and resource.assignee_id == actor.id
    )


def _can_resolve_payout(actor: Actor, resource: Resource) -> bool:
    # A payout is never approved by the party who requested it.
    if resource.requester_id is not None and resource.requester_id == actor.id:
        return False
    if resource.owner_id is None:
        return actor.role == UserRole.SUPER_ADMIN
    return resource.owner_id == actor.id


def _can_view_payout(actor: Actor, resource: Resource) -> bool:
    if actor.is_staff:
        return True
    return _is_owner(actor, resource) or resource.requester_id == actor.id


DEFAULT_RULES: Dict[Action, Rule] = {
    Action.PLACE_ORDER: _is_owner,
    Action.MANAGE_CART: _is_owner,
    Action.VALIDATE_COUPON: _is_owner,
    Action.VIEW_ORDER: lambda actor, resource: (
        actor.is_staff
        or _is_owner(actor, resource)
        or _is_assigned_courier(actor, resource)
    ),
    Action.CANCEL_ORDER: lambda actor, resource: (
        actor.is_staff or _is_owner(actor, resource)
    ),
    Action.UPDATE_ORDER_STATUS: lambda actor, resource: actor.is_staff,
    Action.ASSIGN_COURIER: lambda actor, resource: actor.is_staff,
    Action.PICK_UP_ORDER: _is_assigned_courier,
    Action.MARK_DELIVERED: _is_assigned_courier,
    Action.RESPOND_TO_DELIVERY: _is_owner,
    Action.VIEW_DISPUTES: lambda actor, resource: actor.is_staff,
    Action.REQUEST_ACTIVATION: lambda actor, resource: (
        actor.role == UserRole.DELIVERY and _is_owner(actor, resource)
    ),
    Action.RESOLVE_ACTIVATION: lambda actor, resource: actor.is_staff,
    Action.REQUEST_PAYOUT: lambda actor, resource: (
        actor.is_staff and resource.requester_id == actor.id
    ),
    Action.RESOLVE_PAYOUT: _can_resolve_payout,
    Action.VIEW_PAYOUT: _can_view_payout,
    Action.RESTOCK_INVENTORY: lambda actor, resource: actor.is_staff,
    Action.MANAGE_SHOP: lambda actor, resource: actor.is_staff,
}


class Policy:
    """
    Table of (action -> rule) consulted before every guarded operation.

    Example:
        >>> policy = Policy()
        >>> policy.authorize(actor, Action.CANCEL_ORDER, Resource(owner_id=order.user_id))
    """

    def __init__(self, rules: Optional[Dict[Action, Rule]] = None):
        self._rules = dict(DEFAULT_RULES if rules is None else rules)

    def is_allowed(
        self,
        actor: Actor,
        action: Action,
        resource: Optional[Resource] = None,
    ) -> bool:
        rule = self._rules.get(action)
        if rule is None:
            return False
        return rule(actor, resource or Resource())

    def authorize(
        self,
        actor: Actor,
        action: Action,
        resource: Optional[Resource] = None,
    ) -> None:
        """
        Raise unless ``actor`` may perform ``action`` on ``resource``.

        Raises:
            AuthorizationError: If no rule grants the action
        """
        if self.is_allowed(actor, action, resource):
            return

        logger.warning(
            "Authorization denied",
            actor_id=str(actor.id),
            role=actor.role.value,
            action=action.value,
        )
        raise AuthorizationError(
            f"Not allowed to {action.value.replace('_', ' ')}",
            action=action.value,
            role=actor.role.value,
        )


_default_policy = Policy()


def get_policy() -> Policy:
    return _default_policy
