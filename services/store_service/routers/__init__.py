"""Store service routers package."""

from services.store_service.routers.auth import router as auth_router
from services.store_service.routers.cart import router as cart_router
from services.store_service.routers.categories import router as categories_router
from services.store_service.routers.discounts import router as discounts_router
from services.store_service.routers.images import router as images_router
from services.store_service.routers.orders import router as orders_router
from services.store_service.routers.payment import router as payment_router
from services.store_service.routers.products import router as products_router

__all__ = [
    "auth_router",
    "cart_router",
    "categories_router",
    "discounts_router",
    "images_router",
    "orders_router",
    "payment_router",
    "products_router",
]
