"""
User model.

Identity is managed by the external auth provider; this table mirrors the
subset the fulfillment engine needs: who the actor is and which role they
act in.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from quickcart.database.base import BaseModel, enum_values


class UserRole(str, Enum):
    """Roles recognized by the authorization policy."""

    CUSTOMER = "customer"
    DELIVERY = "delivery"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(
                f"Invalid role: {value}. "
                f"Valid values are: {', '.join(r.value for r in cls)}"
            )

    def is_staff(self) -> bool:
        return self in {UserRole.ADMIN, UserRole.SUPER_ADMIN}


class User(BaseModel):
    """
    Application user (customer, courier or staff).
    """

    __tablename__ = "users"

    email: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", values_callable=enum_values),
        nullable=False,
        default=UserRole.CUSTOMER,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
