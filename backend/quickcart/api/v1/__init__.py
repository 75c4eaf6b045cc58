"""
API v1 package initialization.

Collects the v1 routers under one ``api_router`` mounted at ``/api/v1``.
"""

from fastapi import APIRouter

from quickcart.api.v1.cart import router as cart_router
from quickcart.api.v1.coupons import router as coupons_router
from quickcart.api.v1.delivery import router as delivery_router
from quickcart.api.v1.inventory import router as inventory_router
from quickcart.api.v1.orders import router as orders_router
from quickcart.api.v1.payouts import router as payouts_router
from quickcart.api.v1.shop import router as shop_router

api_router = APIRouter()
api_router.include_router(orders_router)
api_router.include_router(cart_router)
api_router.include_router(coupons_router)
api_router.include_router(delivery_router)
api_router.include_router(payouts_router)
api_router.include_router(inventory_router)
api_router.include_router(shop_router)

__all__ = ["api_router"]
