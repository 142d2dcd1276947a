"""Enum definitions for store service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class FulfillmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    RETURNED = "RETURNED"


class PaymentMethod(str, enum.Enum):
    COD = "COD"
    VNPAY = "VNPAY"
    BANK_TRANSFER = "BANK_TRANSFER"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class LoyaltyTransactionType(str, enum.Enum):
    WELCOME_BONUS = "WELCOME_BONUS"
    EARNED_PURCHASE = "EARNED_PURCHASE"
    REDEEMED_DISCOUNT = "REDEEMED_DISCOUNT"
    REDEMPTION_RESTORED = "REDEMPTION_RESTORED"
    EARNED_REVERSED = "EARNED_REVERSED"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class AuditEntityType(str, enum.Enum):
    PRODUCT = "product"
    VARIANT = "variant"
    CATEGORY = "category"
    DISCOUNT = "discount"
