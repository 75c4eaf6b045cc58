"""
Order status and stock conflict enums.

Valid order status transitions:
- PENDING -> CONFIRMED, OUT_FOR_DELIVERY, CANCELLED, REJECTED
- CONFIRMED -> OUT_FOR_DELIVERY, CANCELLED, REJECTED
- OUT_FOR_DELIVERY -> DELIVERED, CANCELLED, REJECTED
- DELIVERED, CANCELLED, REJECTED -> (terminal)

PENDING may skip CONFIRMED because a courier can pick up an order the store
never explicitly confirmed.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """
        Parse a status name case-insensitively.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self in {
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
            OrderStatus.REJECTED,
        }

    def is_cancellation(self) -> bool:
        """
        Whether entering this status returns the order's stock to inventory.
        """
        return self in {OrderStatus.CANCELLED, OrderStatus.REJECTED}

    def customer_can_cancel(self) -> bool:
        """Customers may only withdraw orders nobody has acted on yet."""
        return self == OrderStatus.PENDING

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class ConflictType(str, Enum):
    """
    Reason a cart line cannot be fulfilled at placement time.
    """

    NOT_FOUND = "not_found"
    PRODUCT_INACTIVE = "product_inactive"
    VARIANT_NOT_FOUND = "variant_not_found"
    INVALID_QUANTITY = "invalid_quantity"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_STOCK = "insufficient_stock"


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    },
    OrderStatus.OUT_FOR_DELIVERY: {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    },
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REJECTED: set(),
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus,
) -> bool:
    """
    Check a status change against ``ORDER_STATUS_TRANSITIONS``.

    Args:
        current: Current order status
        new: Requested status

    Returns:
        True if the transition is allowed
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()
