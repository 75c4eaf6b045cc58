"""
Guest cart kept on the client until sign-in.

Unauthenticated shoppers keep their cart in browser storage. The server only
sees it as a payload posted to the merge endpoint after sign-in; ``GuestCart``
parses and normalizes that payload.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

LineKey = tuple[uuid.UUID, Optional[uuid.UUID]]


class MergeStrategy(str, Enum):
    """
    What to do with a guest cart when its owner signs in.

    MERGE adds guest quantities to matching server lines. REPLACE swaps the
    server cart for the guest cart. KEEP_SERVER discards the guest cart.
    """

    MERGE = "merge"
    REPLACE = "replace"
    KEEP_SERVER = "keep_server"


@dataclass
class GuestCart:
    """
    Client side cart keyed by (product, variant).
    """

    quantities: dict[LineKey, int] = field(default_factory=dict)

    @classmethod
    def from_items(cls, items: Iterable[dict[str, Any]]) -> "GuestCart":
        """
        Build a cart from ``[{product_id, variant_id, quantity}]``.

        Duplicate keys are summed and non-positive quantities dropped, which
        is how the storefront's local storage cart behaves.
        """
        cart = cls()
        for item in items:
            variant = item.get("variant_id")
            cart.add(
                uuid.UUID(str(item["product_id"])),
                uuid.UUID(str(variant)) if variant else None,
                int(item.get("quantity", 1)),
            )
        return cart

    def add(
        self,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
        quantity: int = 1,
    ) -> None:
        if quantity <= 0:
            return
        key = (product_id, variant_id)
        self.quantities[key] = self.quantities.get(key, 0) + quantity

    def set_quantity(
        self,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID],
        quantity: int,
    ) -> None:
        key = (product_id, variant_id)
        if quantity <= 0:
            self.quantities.pop(key, None)
        else:
            self.quantities[key] = quantity

    def remove(self, product_id: uuid.UUID, variant_id: Optional[uuid.UUID]) -> None:
        self.quantities.pop((product_id, variant_id), None)

    def __iter__(self) -> Iterator[tuple[LineKey, int]]:
        return iter(self.quantities.items())

    def __len__(self) -> int:
        return len(self.quantities)

    def to_items(self) -> list[dict[str, Any]]:
        return [
            {
                "product_id": str(product_id),
                "variant_id": str(variant_id) if variant_id else None,
                "quantity": quantity,
            }
            for (product_id, variant_id), quantity in self.quantities.items()
        ]
