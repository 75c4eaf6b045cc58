"""
Server side cart lines for signed-in users.
"""

import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickcart.database.base import BaseModel
from quickcart.database.models.product import Product, ProductVariant

# Stand-in for a NULL variant so (user, product, no variant) stays unique.
_NIL_UUID = "00000000-0000-0000-0000-000000000000"


class CartItem(BaseModel):
    """
    One line of a user's cart.

    There is at most one line per (user, product, variant). Adding the same
    product again increases the quantity of the existing line.
    """

    __tablename__ = "cart_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        Index(
            "uq_cart_items_user_product_variant",
            "user_id",
            "product_id",
            func.coalesce(text("variant_id"), text(f"'{_NIL_UUID}'::uuid")),
            unique=True,
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    product: Mapped["Product"] = relationship("Product", lazy="selectin")
    variant: Mapped[Optional["ProductVariant"]] = relationship(
        "ProductVariant", lazy="selectin"
    )
