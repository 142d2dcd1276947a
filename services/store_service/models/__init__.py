"""Store Service models package."""

from services.store_service.models.catalog import Category, Product, ProductVariant
from services.store_service.models.commerce import (
    CartItem,
    Order,
    OrderItem,
    OrderStatusHistory,
    StoreAuditLog,
)
from services.store_service.models.enums import (
    AuditEntityType,
    DiscountType,
    FulfillmentStatus,
    LoyaltyTransactionType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from services.store_service.models.promotions import (
    DiscountCode,
    DiscountUsage,
    LoyaltyTransaction,
)
from services.store_service.models.users import User

__all__ = [
    "AuditEntityType",
    "CartItem",
    "Category",
    "DiscountCode",
    "DiscountType",
    "DiscountUsage",
    "FulfillmentStatus",
    "LoyaltyTransaction",
    "LoyaltyTransactionType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentMethod",
    "PaymentStatus",
    "Product",
    "ProductVariant",
    "StoreAuditLog",
    "User",
]
