"""Per-user cart operations. Prices are always resolved from the live catalog."""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from libs.common.currency import ZERO, points_to_vnd
from libs.common.errors import NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.store_service.models import CartItem, Product, ProductVariant, User
from services.store_service.services.pricing import (
    MAX_ITEMS_PER_CART,
    MAX_QUANTITY_PER_ITEM,
    calculate_shipping,
    calculate_tax,
    unit_price,
)
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


@dataclass
class CartLine:
    item: CartItem
    unit_price: Decimal
    line_total: Decimal
    available_stock: int
    is_available: bool


@dataclass
class CartView:
    lines: List[CartLine] = field(default_factory=list)
    subtotal: Decimal = ZERO
    estimated_tax: Decimal = ZERO
    estimated_shipping: Decimal = ZERO
    estimated_total: Decimal = ZERO
    loyalty_points: int = 0

    @property
    def item_count(self) -> int:
        return sum(line.item.quantity for line in self.lines)

    @property
    def loyalty_points_value(self) -> Decimal:
        return points_to_vnd(self.loyalty_points)


def available_stock(product: Product, variant: Optional[ProductVariant]) -> int:
    return variant.stock_quantity if variant is not None else product.stock_quantity


def is_purchasable(product: Product, variant: Optional[ProductVariant]) -> bool:
    return product.is_active and (variant is None or variant.is_active)


async def _load_items(db: AsyncSession, user_id: uuid.UUID) -> List[CartItem]:
    result = await db.execute(
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .options(selectinload(CartItem.product), selectinload(CartItem.variant))
        .order_by(CartItem.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_cart(db: AsyncSession, *, user_id: uuid.UUID) -> CartView:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")

    view = CartView(loyalty_points=user.loyalty_points)
    for item in await _load_items(db, user_id):
        price = unit_price(item.product, item.variant)
        stock = available_stock(item.product, item.variant)
        view.lines.append(
            CartLine(
                item=item,
                unit_price=price,
                line_total=price * item.quantity,
                available_stock=stock,
                is_available=is_purchasable(item.product, item.variant)
                and stock >= item.quantity,
            )
        )
    view.subtotal = sum((line.line_total for line in view.lines), ZERO)
    view.estimated_tax = calculate_tax(view.subtotal)
    view.estimated_shipping = calculate_shipping(view.subtotal)
    view.estimated_total = view.subtotal + view.estimated_tax + view.estimated_shipping
    return view


async def _resolve(
    db: AsyncSession, product_id: uuid.UUID, variant_id: Optional[uuid.UUID]
):
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    if not product.is_active:
        raise ValidationError(
            "Product is not available", code="PRODUCT_NOT_AVAILABLE"
        )
    variant = None
    if variant_id:
        variant = await db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise NotFoundError("Variant not found", code="VARIANT_NOT_FOUND")
        if not variant.is_active:
            raise ValidationError(
                "Variant is not available", code="VARIANT_NOT_AVAILABLE"
            )
    return product, variant


def _check_quantity(quantity: int, stock: int) -> None:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", code="INVALID_QUANTITY")
    if quantity > MAX_QUANTITY_PER_ITEM:
        raise ValidationError(
            f"Maximum {MAX_QUANTITY_PER_ITEM} units per item",
            code="QUANTITY_LIMIT_EXCEEDED",
        )
    if quantity > stock:
        raise ValidationError(
            f"Only {stock} units available", code="INSUFFICIENT_STOCK"
        )


async def add_to_cart(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    product_id: uuid.UUID,
    quantity: int = 1,
    variant_id: Optional[uuid.UUID] = None,
    customizations: Optional[dict] = None,
) -> CartView:
    """Add a line, merging with an existing line for the same product/variant."""
    if not await db.get(User, user_id):
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    product, variant = await _resolve(db, product_id, variant_id)
    stock = available_stock(product, variant)

    existing_items = await _load_items(db, user_id)
    existing = next(
        (
            item
            for item in existing_items
            if item.product_id == product_id and item.variant_id == variant_id
        ),
        None,
    )

    if existing:
        new_quantity = existing.quantity + quantity
        _check_quantity(new_quantity, stock)
        existing.quantity = new_quantity
        if customizations is not None:
            existing.customizations = customizations
    else:
        if len(existing_items) >= MAX_ITEMS_PER_CART:
            raise ValidationError(
                f"Cart cannot hold more than {MAX_ITEMS_PER_CART} items",
                code="CART_FULL",
            )
        _check_quantity(quantity, stock)
        db.add(
            CartItem(
                user_id=user_id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                customizations=customizations,
            )
        )

    await db.commit()
    logger.info("User %s added %s x%d to cart", user_id, product.sku, quantity)
    return await get_cart(db, user_id=user_id)


async def _get_own_item(
    db: AsyncSession, user_id: uuid.UUID, item_id: uuid.UUID
) -> CartItem:
    item = await db.get(CartItem, item_id)
    if not item or item.user_id != user_id:
        raise NotFoundError("Cart item not found", code="CART_ITEM_NOT_FOUND")
    return item


async def update_cart_item(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    item_id: uuid.UUID,
    quantity: int,
    customizations: Optional[dict] = None,
) -> CartView:
    item = await _get_own_item(db, user_id, item_id)
    product, variant = await _resolve(db, item.product_id, item.variant_id)
    _check_quantity(quantity, available_stock(product, variant))

    item.quantity = quantity
    if customizations is not None:
        item.customizations = customizations
    await db.commit()
    return await get_cart(db, user_id=user_id)


async def remove_cart_item(
    db: AsyncSession, *, user_id: uuid.UUID, item_id: uuid.UUID
) -> CartView:
    item = await _get_own_item(db, user_id, item_id)
    await db.delete(item)
    await db.commit()
    return await get_cart(db, user_id=user_id)


async def clear_cart(db: AsyncSession, *, user_id: uuid.UUID) -> None:
    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    await db.commit()


async def validate_cart_stock(db: AsyncSession, *, user_id: uuid.UUID) -> List[str]:
    """Human-readable problems that would block checkout. Empty when clean."""
    issues = []
    for item in await _load_items(db, user_id):
        product, variant = item.product, item.variant
        label = product.name + (f" ({variant.variant_name})" if variant else "")
        if not is_purchasable(product, variant):
            issues.append(f"{label} is no longer available")
            continue
        stock = available_stock(product, variant)
        if stock <= 0:
            issues.append(f"{label} is out of stock")
        elif stock < item.quantity:
            issues.append(f"Only {stock} units of {label} available")
    return issues
