"""
SQLAlchemy declarative base and model mixins.

All QuickCart tables use UUID primary keys and server managed timestamps.
``Base`` adds async attribute loading and a JSON friendly ``to_dict``.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def utcnow() -> datetime:
    """Timezone aware current time used for every application timestamp."""
    return datetime.now(timezone.utc)


def enum_values(enum_cls: type) -> list[str]:
    """Persist enums by value (``"out_for_delivery"``) instead of member name."""
    return [member.value for member in enum_cls]


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all models.
    """

    __abstract__ = True

    def to_dict(self, exclude: Optional[set[str]] = None) -> Dict[str, Any]:
        """
        Serialize column values to JSON compatible primitives.

        Args:
            exclude: Column names to leave out

        Returns:
            Mapping of column name to value. Datetimes become ISO strings,
            UUIDs become strings and Decimals become strings to keep precision.
        """
        exclude = exclude or set()
        result: Dict[str, Any] = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                result[column.name] = value.isoformat()
            elif isinstance(value, uuid.UUID):
                result[column.name] = str(value)
            elif isinstance(value, Decimal):
                result[column.name] = str(value)
            elif hasattr(value, "value"):
                result[column.name] = value.value
            else:
                result[column.name] = value

        return result

    def __repr__(self) -> str:
        pk_values = [
            f"{column.name}={getattr(self, column.key, None)!r}"
            for column in self.__table__.primary_key.columns
        ]
        return f"<{self.__class__.__name__}({', '.join(pk_values)})>"


class TimestampMixin:
    """
    Adds ``created_at`` and ``updated_at`` maintained by the database.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        )


class UUIDMixin:
    """
    UUID primary key generated client side with uuid4.

    The id is assigned at construction time so that rows can reference each
    other before the first flush.
    """

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            nullable=False,
        )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Base for regular tables: UUID id plus timestamps.

    Example:
        class Product(BaseModel):
            __tablename__ = "products"

            name: Mapped[str] = mapped_column(String(255))
    """

    __abstract__ = True
