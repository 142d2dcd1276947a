"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    user = UserFactory.create(email="custom@coffeetea.vn")
    db_session.add(user)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

DEFAULT_PASSWORD = "Brew#Mocha42"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _tomorrow() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1)


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex[:8]}@coffeetea.vn"


def _suffix() -> str:
    return uuid.uuid4().hex[:6]


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class UserFactory:
    @staticmethod
    def create(**overrides):
        from libs.auth.security import hash_password
        from services.store_service.models import User, UserRole

        password = overrides.pop("password", DEFAULT_PASSWORD)
        defaults = {
            "id": _uuid(),
            "email": _unique_email(),
            "password_hash": hash_password(password),
            "full_name": "Test Customer",
            "phone": "0901234567",
            "role": UserRole.CUSTOMER,
            "is_active": True,
            "is_email_verified": True,
            "failed_login_attempts": 0,
            "loyalty_points": 0,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return User(**defaults)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class CategoryFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import Category

        suffix = _suffix()
        defaults = {
            "id": _uuid(),
            "name": f"Arabica {suffix}",
            "slug": f"arabica-{suffix}",
            "description": "Single-origin arabica beans",
            "sort_order": 0,
            "is_active": True,
            "is_featured": False,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Category(**defaults)


class ProductFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import Product

        suffix = _suffix()
        defaults = {
            "id": _uuid(),
            "category_id": None,
            "name": f"Da Lat Arabica {suffix}",
            "slug": f"da-lat-arabica-{suffix}",
            "sku": f"CF-{suffix.upper()}",
            "description": "Medium roast from the Lam Dong highlands",
            "base_price": Decimal("100000"),
            "stock_quantity": 50,
            "low_stock_threshold": 5,
            "is_active": True,
            "is_featured": False,
            "tags": ["coffee", "arabica"],
            "images": [],
            "attributes": {"roast_level": "medium", "origin": "Vietnam"},
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Product(**defaults)


class VariantFactory:
    @staticmethod
    def create(product_id=None, **overrides):
        from services.store_service.models import ProductVariant

        suffix = _suffix()
        defaults = {
            "id": _uuid(),
            "product_id": product_id or _uuid(),
            "sku": f"CF-{suffix.upper()}-500G",
            "variant_name": "500g",
            "price_adjustment": Decimal("80000"),
            "stock_quantity": 20,
            "attributes": {"weight": "500g"},
            "is_active": True,
            "sort_order": 0,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return ProductVariant(**defaults)


# ---------------------------------------------------------------------------
# Promotions
# ---------------------------------------------------------------------------


class DiscountFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import DiscountCode, DiscountType

        defaults = {
            "id": _uuid(),
            "code": f"SAVE{_suffix().upper()}",
            "description": "Test promotion",
            "discount_type": DiscountType.PERCENTAGE,
            "value": Decimal("10"),
            "min_order_amount": Decimal("0"),
            "max_discount_amount": None,
            "max_uses": 10,
            "used_count": 0,
            "applicable_users": [],
            "is_first_time_only": False,
            "valid_from": _now() - timedelta(days=1),
            "valid_until": _tomorrow(),
            "is_active": True,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return DiscountCode(**defaults)


class CartItemFactory:
    @staticmethod
    def create(user_id, product_id, **overrides):
        from services.store_service.models import CartItem

        defaults = {
            "id": _uuid(),
            "user_id": user_id,
            "product_id": product_id,
            "variant_id": None,
            "quantity": 1,
            "customizations": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return CartItem(**defaults)
