"""
Database models.

Importing this package registers every table with ``Base.metadata`` so that
relationships resolve and Alembic sees the full schema.
"""

from quickcart.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from quickcart.database.models.user import User, UserRole
from quickcart.database.models.product import Product, ProductVariant
from quickcart.database.models.cart import CartItem
from quickcart.database.models.coupon import Coupon, CouponUsage, DiscountType
from quickcart.database.models.order import Order, OrderItem, OrderStatusHistory
from quickcart.database.models.delivery import DeliveryActivation, DeliveryAssignment
from quickcart.database.models.payout import Payout
from quickcart.database.models.security_event import SecurityEvent
from quickcart.database.models.shop import SHOP_SETTINGS_ID, ShopSettings, ShopState

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "User",
    "UserRole",
    "Product",
    "ProductVariant",
    "CartItem",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "DeliveryAssignment",
    "DeliveryActivation",
    "Payout",
    "SecurityEvent",
    "SHOP_SETTINGS_ID",
    "ShopSettings",
    "ShopState",
]
