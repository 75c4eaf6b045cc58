"""
Delivery assignment and courier activation enums.

Assignment states are derived from the timestamps on the assignment row:

- UNASSIGNED -> ASSIGNED (system auto-assign or admin)
- ASSIGNED -> ASSIGNED (admin reassignment), PICKED_UP (courier)
- PICKED_UP -> MARKED_DELIVERED (courier)
- MARKED_DELIVERED -> CONFIRMED (customer accepts, terminal)
- MARKED_DELIVERED -> REJECTED (customer disputes)
- REJECTED -> MARKED_DELIVERED (courier re-delivers after review)
"""

from enum import Enum
from typing import Dict, Set


class DeliveryState(str, Enum):
    """Position of an assignment in the delivery handshake."""

    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    MARKED_DELIVERED = "marked_delivered"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

    def is_terminal(self) -> bool:
        return self == DeliveryState.CONFIRMED

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class DeliveryAction(str, Enum):
    """Actions that move an assignment between states."""

    ASSIGN = "assign"
    PICK_UP = "pick_up"
    MARK_DELIVERED = "mark_delivered"
    CONFIRM = "confirm"
    REJECT = "reject"


class ActivationStatus(str, Enum):
    """Admin decision on a courier's request to work today."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def from_string(cls, value: str) -> "ActivationStatus":
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(
                f"Invalid activation status: {value}. "
                f"Valid values are: {', '.join(s.value for s in cls)}"
            )


DELIVERY_TRANSITIONS: Dict[DeliveryAction, Dict[DeliveryState, DeliveryState]] = {
    DeliveryAction.ASSIGN: {
        DeliveryState.UNASSIGNED: DeliveryState.ASSIGNED,
        DeliveryState.ASSIGNED: DeliveryState.ASSIGNED,
    },
    DeliveryAction.PICK_UP: {
        DeliveryState.ASSIGNED: DeliveryState.PICKED_UP,
    },
    DeliveryAction.MARK_DELIVERED: {
        DeliveryState.PICKED_UP: DeliveryState.MARKED_DELIVERED,
        DeliveryState.REJECTED: DeliveryState.MARKED_DELIVERED,
    },
    DeliveryAction.CONFIRM: {
        DeliveryState.MARKED_DELIVERED: DeliveryState.CONFIRMED,
    },
    DeliveryAction.REJECT: {
        DeliveryState.MARKED_DELIVERED: DeliveryState.REJECTED,
    },
}


def get_allowed_delivery_actions(state: DeliveryState) -> Set[DeliveryAction]:
    """
    Actions that are valid from ``state``.
    """
    return {
        action
        for action, edges in DELIVERY_TRANSITIONS.items()
        if state in edges
    }
