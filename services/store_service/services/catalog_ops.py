"""Catalog operations: products, variants, stock and categories."""

import math
import uuid
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Tuple

from libs.common.errors import ConflictError, NotFoundError, ValidationError
from libs.common.logging import get_logger
from libs.common.text import generate_slug
from services.store_service.models import (
    AuditEntityType,
    Category,
    Product,
    ProductVariant,
)
from services.store_service.services.audit import log_audit
from sqlalchemy import String, asc, cast, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

ROAST_LEVELS = ("light", "medium", "medium-dark", "dark")
GRIND_SIZES = ("whole-bean", "coarse", "medium", "fine", "extra-fine")
TEA_TYPES = ("black", "green", "white", "oolong", "pu-erh", "herbal")

SORT_COLUMNS = {
    "name": Product.name,
    "price": Product.base_price,
    "created": Product.created_at,
    "updated": Product.updated_at,
    "stock": Product.stock_quantity,
}

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


# ============================================================================
# VALIDATION
# ============================================================================


def validate_product_attributes(attributes: Optional[dict]) -> None:
    """Reject unknown roast levels, grind sizes and tea types."""
    if not attributes:
        return
    checks = (
        ("roast_level", ROAST_LEVELS),
        ("grind_size", GRIND_SIZES),
        ("tea_type", TEA_TYPES),
    )
    errors = []
    for key, allowed in checks:
        value = attributes.get(key)
        if value is not None and value not in allowed:
            errors.append(f"{key} must be one of: {', '.join(allowed)}")
    if errors:
        raise ValidationError(
            "Invalid product attributes", code="INVALID_ATTRIBUTES", details=errors
        )


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    seen = []
    for tag in tags or []:
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def _tag_pattern(tag: str) -> str:
    return f'%"{tag.strip().lower()}"%'


# ============================================================================
# PRODUCT QUERIES
# ============================================================================


async def search_products(
    db: AsyncSession,
    *,
    query: Optional[str] = None,
    category_id: Optional[uuid.UUID] = None,
    category_slug: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    tags: Optional[List[str]] = None,
    is_featured: Optional[bool] = None,
    in_stock: Optional[bool] = None,
    sort_by: str = "created",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    include_inactive: bool = False,
) -> Tuple[List[Product], int]:
    """Filtered, sorted, paginated product listing. Returns ``(items, total)``."""
    filters = []
    if not include_inactive:
        filters.append(Product.is_active.is_(True))
    if query:
        term = f"%{query.strip()}%"
        filters.append(
            or_(
                Product.name.ilike(term),
                Product.description.ilike(term),
                Product.short_description.ilike(term),
                Product.sku.ilike(term),
                cast(Product.tags, String).ilike(_tag_pattern(query)),
            )
        )
    if category_id:
        filters.append(Product.category_id == category_id)
    if category_slug:
        filters.append(
            Product.category_id.in_(
                select(Category.id).where(Category.slug == category_slug)
            )
        )
    if min_price is not None:
        filters.append(Product.base_price >= min_price)
    if max_price is not None:
        filters.append(Product.base_price <= max_price)
    for tag in normalize_tags(tags):
        filters.append(cast(Product.tags, String).ilike(_tag_pattern(tag)))
    if is_featured is not None:
        filters.append(Product.is_featured.is_(is_featured))
    if in_stock is True:
        filters.append(Product.stock_quantity > 0)
    elif in_stock is False:
        filters.append(Product.stock_quantity <= 0)

    total = await db.scalar(select(func.count(Product.id)).where(*filters)) or 0

    column = SORT_COLUMNS.get(sort_by, Product.created_at)
    direction = asc if sort_order == "asc" else desc
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)

    result = await db.execute(
        select(Product)
        .where(*filters)
        .options(selectinload(Product.variants), selectinload(Product.category))
        .order_by(direction(column), Product.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_product(
    db: AsyncSession,
    id_or_slug: Any,
    *,
    include_inactive: bool = False,
) -> Product:
    """Look a product up by UUID or slug, with variants loaded."""
    stmt = select(Product).options(
        selectinload(Product.variants), selectinload(Product.category)
    )
    try:
        product_id = uuid.UUID(str(id_or_slug))
    except ValueError:
        stmt = stmt.where(Product.slug == str(id_or_slug))
    else:
        stmt = stmt.where(Product.id == product_id)

    result = await db.execute(stmt.execution_options(populate_existing=True))
    product = result.scalar_one_or_none()
    if not product or (not include_inactive and not product.is_active):
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    return product


# ============================================================================
# PRODUCT MUTATIONS
# ============================================================================


async def _ensure_unique_product(
    db: AsyncSession,
    *,
    slug: Optional[str] = None,
    sku: Optional[str] = None,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    if slug:
        stmt = select(Product.id).where(Product.slug == slug)
        if exclude_id:
            stmt = stmt.where(Product.id != exclude_id)
        if await db.scalar(stmt):
            raise ConflictError(
                "A product with this slug already exists", code="DUPLICATE_SLUG"
            )
    if sku:
        stmt = select(Product.id).where(Product.sku == sku)
        if exclude_id:
            stmt = stmt.where(Product.id != exclude_id)
        if await db.scalar(stmt) or await db.scalar(
            select(ProductVariant.id).where(ProductVariant.sku == sku)
        ):
            raise ConflictError(
                "A product with this SKU already exists", code="DUPLICATE_SKU"
            )


async def _ensure_category(db: AsyncSession, category_id: Optional[uuid.UUID]) -> None:
    if category_id and not await db.get(Category, category_id):
        raise NotFoundError("Category not found", code="CATEGORY_NOT_FOUND")


async def create_product(
    db: AsyncSession, *, data: dict, performed_by: str
) -> Product:
    data = dict(data)
    variants = data.pop("variants", None) or []
    data["slug"] = generate_slug(data.get("slug") or data["name"])
    data["sku"] = data["sku"].strip().upper()
    data["tags"] = normalize_tags(data.get("tags"))
    validate_product_attributes(data.get("attributes"))

    await _ensure_category(db, data.get("category_id"))
    await _ensure_unique_product(db, slug=data["slug"], sku=data["sku"])

    product = Product(**data)
    db.add(product)
    await db.flush()

    seen_skus = {product.sku}
    for index, variant_data in enumerate(variants):
        variant_data = dict(variant_data)
        variant_data["sku"] = variant_data["sku"].strip().upper()
        variant_data.setdefault("sort_order", index)
        if variant_data["sku"] in seen_skus:
            raise ConflictError(
                f"Duplicate SKU {variant_data['sku']} in request", code="DUPLICATE_SKU"
            )
        seen_skus.add(variant_data["sku"])
        await _ensure_unique_variant_sku(db, variant_data["sku"])
        db.add(ProductVariant(product_id=product.id, **variant_data))

    await db.commit()
    logger.info("Created product %s (%s) by %s", product.sku, product.id, performed_by)
    return await get_product(db, product.id, include_inactive=True)


async def update_product(
    db: AsyncSession,
    product_id: uuid.UUID,
    *,
    data: dict,
    performed_by: str,
) -> Product:
    product = await get_product(db, product_id, include_inactive=True)
    data = dict(data)

    if "name" in data and "slug" not in data and data["name"] != product.name:
        data["slug"] = generate_slug(data["name"])
    elif data.get("slug"):
        data["slug"] = generate_slug(data["slug"])
    if "sku" in data and data["sku"]:
        data["sku"] = data["sku"].strip().upper()
    if "tags" in data:
        data["tags"] = normalize_tags(data["tags"])
    if "attributes" in data:
        validate_product_attributes(data["attributes"])
    if "category_id" in data:
        await _ensure_category(db, data["category_id"])

    await _ensure_unique_product(
        db,
        slug=data.get("slug") if data.get("slug") != product.slug else None,
        sku=data.get("sku") if data.get("sku") != product.sku else None,
        exclude_id=product.id,
    )

    new_price = data.get("base_price")
    if new_price is not None and Decimal(new_price) != product.base_price:
        log_audit(
            db,
            entity_type=AuditEntityType.PRODUCT,
            entity_id=product.id,
            action="price_changed",
            performed_by=performed_by,
            old_value={"base_price": str(product.base_price)},
            new_value={"base_price": str(new_price)},
        )

    for field, value in data.items():
        setattr(product, field, value)

    await db.commit()
    return await get_product(db, product.id, include_inactive=True)


async def delete_product(db: AsyncSession, product_id: uuid.UUID) -> None:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    await db.delete(product)
    await db.commit()
    logger.info("Deleted product %s", product_id)


# ============================================================================
# VARIANTS
# ============================================================================


async def _ensure_unique_variant_sku(
    db: AsyncSession, sku: str, exclude_id: Optional[uuid.UUID] = None
) -> None:
    stmt = select(ProductVariant.id).where(ProductVariant.sku == sku)
    if exclude_id:
        stmt = stmt.where(ProductVariant.id != exclude_id)
    if await db.scalar(stmt) or await db.scalar(
        select(Product.id).where(Product.sku == sku)
    ):
        raise ConflictError(
            "A variant with this SKU already exists", code="DUPLICATE_SKU"
        )


async def _get_variant(
    db: AsyncSession, product_id: uuid.UUID, variant_id: uuid.UUID
) -> ProductVariant:
    variant = await db.get(ProductVariant, variant_id)
    if not variant or variant.product_id != product_id:
        raise NotFoundError("Variant not found", code="VARIANT_NOT_FOUND")
    return variant


async def create_variant(
    db: AsyncSession, product_id: uuid.UUID, *, data: dict
) -> ProductVariant:
    if not await db.get(Product, product_id):
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    data = dict(data)
    data["sku"] = data["sku"].strip().upper()
    await _ensure_unique_variant_sku(db, data["sku"])

    variant = ProductVariant(product_id=product_id, **data)
    db.add(variant)
    await db.commit()
    await db.refresh(variant)
    return variant


async def update_variant(
    db: AsyncSession,
    product_id: uuid.UUID,
    variant_id: uuid.UUID,
    *,
    data: dict,
) -> ProductVariant:
    variant = await _get_variant(db, product_id, variant_id)
    data = dict(data)
    if data.get("sku"):
        data["sku"] = data["sku"].strip().upper()
        if data["sku"] != variant.sku:
            await _ensure_unique_variant_sku(db, data["sku"], exclude_id=variant.id)
    for field, value in data.items():
        setattr(variant, field, value)
    await db.commit()
    await db.refresh(variant)
    return variant


async def delete_variant(
    db: AsyncSession, product_id: uuid.UUID, variant_id: uuid.UUID
) -> None:
    variant = await _get_variant(db, product_id, variant_id)
    await db.delete(variant)
    await db.commit()


# ============================================================================
# INVENTORY
# ============================================================================


async def adjust_stock(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    delta: int,
    performed_by: str,
    variant_id: Optional[uuid.UUID] = None,
    reason: Optional[str] = None,
) -> Product:
    """Apply a signed stock adjustment. Stock may never go below zero."""
    if variant_id:
        target = await _get_variant(db, product_id, variant_id)
        entity_type = AuditEntityType.VARIANT
    else:
        target = await db.get(Product, product_id)
        if not target:
            raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
        entity_type = AuditEntityType.PRODUCT

    old_quantity = target.stock_quantity
    new_quantity = old_quantity + delta
    if new_quantity < 0:
        raise ValidationError(
            f"Cannot remove {-delta} units; only {old_quantity} in stock",
            code="INSUFFICIENT_STOCK",
        )

    target.stock_quantity = new_quantity
    log_audit(
        db,
        entity_type=entity_type,
        entity_id=target.id,
        action="stock_adjusted",
        performed_by=performed_by,
        old_value={"stock_quantity": old_quantity},
        new_value={"stock_quantity": new_quantity},
        notes=reason,
    )
    await db.commit()
    logger.info(
        "Stock for %s %s adjusted %+d -> %d",
        entity_type.value,
        target.id,
        delta,
        new_quantity,
    )
    return await get_product(db, product_id, include_inactive=True)


async def get_inventory_status(
    db: AsyncSession, *, low_stock_only: bool = False
) -> List[dict]:
    """Stock per product and variant, flagged against the low-stock threshold."""
    result = await db.execute(
        select(Product)
        .options(selectinload(Product.variants))
        .order_by(Product.stock_quantity, Product.name)
    )
    rows = []
    for product in result.scalars().all():
        threshold = product.low_stock_threshold
        variants = [
            {
                "variant_id": variant.id,
                "sku": variant.sku,
                "variant_name": variant.variant_name,
                "stock_quantity": variant.stock_quantity,
                "is_low_stock": variant.stock_quantity <= threshold,
            }
            for variant in product.variants
        ]
        is_low = product.stock_quantity <= threshold or any(
            v["is_low_stock"] for v in variants
        )
        if low_stock_only and not is_low:
            continue
        rows.append(
            {
                "product_id": product.id,
                "sku": product.sku,
                "name": product.name,
                "stock_quantity": product.stock_quantity,
                "low_stock_threshold": threshold,
                "is_low_stock": is_low,
                "is_active": product.is_active,
                "variants": variants,
            }
        )
    return rows


# ============================================================================
# CATEGORIES
# ============================================================================


async def list_categories(
    db: AsyncSession,
    *,
    include_inactive: bool = False,
    parent_id: Optional[uuid.UUID] = None,
    featured_only: bool = False,
) -> List[Category]:
    stmt = select(Category).order_by(Category.sort_order, Category.name)
    if not include_inactive:
        stmt = stmt.where(Category.is_active.is_(True))
    if parent_id:
        stmt = stmt.where(Category.parent_id == parent_id)
    if featured_only:
        stmt = stmt.where(Category.is_featured.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_category_tree(
    db: AsyncSession, *, include_inactive: bool = False
) -> List[dict]:
    """Nested ``{"category": ..., "children": [...]}`` nodes, roots first."""
    categories = await list_categories(db, include_inactive=include_inactive)
    nodes = {c.id: {"category": c, "children": []} for c in categories}
    roots = []
    for category in categories:
        node = nodes[category.id]
        parent = nodes.get(category.parent_id) if category.parent_id else None
        if parent:
            parent["children"].append(node)
        else:
            roots.append(node)
    return roots


async def get_category(
    db: AsyncSession, id_or_slug: Any, *, include_inactive: bool = False
) -> Category:
    try:
        category_id = uuid.UUID(str(id_or_slug))
    except ValueError:
        category = await db.scalar(
            select(Category).where(Category.slug == str(id_or_slug))
        )
    else:
        category = await db.get(Category, category_id)
    if not category or (not include_inactive and not category.is_active):
        raise NotFoundError("Category not found", code="CATEGORY_NOT_FOUND")
    return category


async def _ensure_unique_category_slug(
    db: AsyncSession, slug: str, exclude_id: Optional[uuid.UUID] = None
) -> None:
    stmt = select(Category.id).where(Category.slug == slug)
    if exclude_id:
        stmt = stmt.where(Category.id != exclude_id)
    if await db.scalar(stmt):
        raise ConflictError(
            "A category with this slug already exists", code="DUPLICATE_SLUG"
        )


async def _would_create_cycle(
    db: AsyncSession, category_id: uuid.UUID, new_parent_id: uuid.UUID
) -> bool:
    current: Optional[uuid.UUID] = new_parent_id
    visited = set()
    while current and current not in visited:
        if current == category_id:
            return True
        visited.add(current)
        current = await db.scalar(
            select(Category.parent_id).where(Category.id == current)
        )
    return False


async def create_category(db: AsyncSession, *, data: dict) -> Category:
    data = dict(data)
    data["slug"] = generate_slug(data.get("slug") or data["name"])
    await _ensure_unique_category_slug(db, data["slug"])
    if data.get("parent_id") and not await db.get(Category, data["parent_id"]):
        raise NotFoundError("Parent category not found", code="CATEGORY_NOT_FOUND")

    category = Category(**data)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    logger.info("Created category %s", category.slug)
    return category


async def update_category(
    db: AsyncSession, category_id: uuid.UUID, *, data: dict
) -> Category:
    category = await get_category(db, category_id, include_inactive=True)
    data = dict(data)

    if "name" in data and "slug" not in data and data["name"] != category.name:
        data["slug"] = generate_slug(data["name"])
    elif data.get("slug"):
        data["slug"] = generate_slug(data["slug"])
    if data.get("slug") and data["slug"] != category.slug:
        await _ensure_unique_category_slug(db, data["slug"], exclude_id=category.id)

    new_parent = data.get("parent_id")
    if new_parent:
        if not await db.get(Category, new_parent):
            raise NotFoundError("Parent category not found", code="CATEGORY_NOT_FOUND")
        if await _would_create_cycle(db, category.id, new_parent):
            raise ValidationError(
                "A category cannot be moved under itself or its descendants",
                code="CIRCULAR_REFERENCE",
            )

    for field, value in data.items():
        setattr(category, field, value)
    await db.commit()
    await db.refresh(category)
    return category


async def delete_category(db: AsyncSession, category_id: uuid.UUID) -> None:
    category = await get_category(db, category_id, include_inactive=True)
    product_count = await db.scalar(
        select(func.count(Product.id)).where(Product.category_id == category.id)
    )
    if product_count:
        raise ConflictError(
            f"Category still has {product_count} products",
            code="CATEGORY_HAS_PRODUCTS",
        )
    child_count = await db.scalar(
        select(func.count(Category.id)).where(Category.parent_id == category.id)
    )
    if child_count:
        raise ConflictError(
            f"Category still has {child_count} subcategories",
            code="CATEGORY_HAS_CHILDREN",
        )
    await db.delete(category)
    await db.commit()


async def toggle_category(
    db: AsyncSession, category_id: uuid.UUID, *, field: str = "is_active"
) -> Category:
    """Flip ``is_active`` or ``is_featured``."""
    if field not in ("is_active", "is_featured"):
        raise ValidationError(f"Cannot toggle {field}")
    category = await get_category(db, category_id, include_inactive=True)
    setattr(category, field, not getattr(category, field))
    await db.commit()
    await db.refresh(category)
    return category


async def reorder_categories(
    db: AsyncSession, ordering: List[Tuple[uuid.UUID, int]]
) -> List[Category]:
    ids = [category_id for category_id, _ in ordering]
    result = await db.execute(select(Category).where(Category.id.in_(ids)))
    by_id = {c.id: c for c in result.scalars().all()}
    missing = [str(i) for i in ids if i not in by_id]
    if missing:
        raise NotFoundError(
            "Category not found", code="CATEGORY_NOT_FOUND", details=missing
        )
    for category_id, sort_order in ordering:
        by_id[category_id].sort_order = sort_order
    await db.commit()
    return await list_categories(db, include_inactive=True)
