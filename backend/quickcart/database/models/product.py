"""
Catalog models: products and their size/quantity variants.

Stock lives on the product row only. Variants carry their own price but draw
from the parent's ``stock_quantity``.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickcart.database.base import BaseModel


class Product(BaseModel):
    """
    Sellable product.

    Attributes:
        name: Display name, also used for the fee exemption keyword match
        category: Free text category
        price: Selling price used when no variant is chosen
        mrp: Optional list price shown as the struck-through price
        stock_quantity: Units available, never negative
        is_active: Inactive products cannot be ordered
        unit: Unit label such as "kg" or "pack"
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        Index("ix_products_is_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    mrp: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def in_stock(self) -> bool:
        return self.is_active and self.stock_quantity > 0


class ProductVariant(BaseModel):
    """
    Priced SKU of a product, e.g. 500 g or 1 kg.

    At most one variant per product is flagged ``is_default``.
    """

    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_product_variants_price_non_negative"),
        Index(
            "uq_product_variants_one_default",
            "product_id",
            unique=True,
            postgresql_where=text("is_default"),
        ),
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant_value: Mapped[str] = mapped_column(String(50), nullable=False)
    variant_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    mrp: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")

    @property
    def label(self) -> str:
        return f"{self.variant_value} {self.variant_unit}"
