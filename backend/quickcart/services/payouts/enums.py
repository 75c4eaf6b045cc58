"""
Payout ledger enums.
"""

from enum import Enum
from typing import Dict, Set


class PayoutType(str, Enum):
    """What a payout settles."""

    DEVELOPER_COMMISSION = "developer_commission"
    DELIVERY_COMMISSION = "delivery_commission"

    @classmethod
    def from_string(cls, value: str) -> "PayoutType":
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(
                f"Invalid payout type: {value}. "
                f"Valid values are: {', '.join(t.value for t in cls)}"
            )


class PayoutStatus(str, Enum):
    """Resolution state of a payout. Only PENDING can change."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    def is_terminal(self) -> bool:
        return self != PayoutStatus.PENDING


PAYOUT_STATUS_TRANSITIONS: Dict[PayoutStatus, Set[PayoutStatus]] = {
    PayoutStatus.PENDING: {PayoutStatus.APPROVED, PayoutStatus.REJECTED},
    PayoutStatus.APPROVED: set(),
    PayoutStatus.REJECTED: set(),
}


def validate_payout_status_transition(
    current: PayoutStatus,
    new: PayoutStatus,
) -> bool:
    return new in PAYOUT_STATUS_TRANSITIONS.get(current, set())
