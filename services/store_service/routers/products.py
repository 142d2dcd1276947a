"""Product router: catalog browsing plus staff product, variant and stock management."""

import uuid
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_optional_user, require_staff
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.schemas import (
    InventoryStatusItem,
    Pagination,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
    ProductVariantCreate,
    ProductVariantResponse,
    ProductVariantUpdate,
    StockAdjustment,
)
from services.store_service.services import catalog_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/products", tags=["products"])

SortField = Literal["name", "price", "created", "updated", "stock"]


def _page(items, total: int, page: int, limit: int) -> ProductListResponse:
    return ProductListResponse(
        items=[ProductResponse.model_validate(p) for p in items],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=catalog_ops.total_pages(total, limit),
        ),
    )


# ============================================================================
# CATALOG
# ============================================================================


@router.get("", response_model=ProductListResponse)
async def list_products(
    q: Optional[str] = Query(None, max_length=100),
    category_id: Optional[uuid.UUID] = None,
    category: Optional[str] = Query(None, description="Category slug"),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    tags: Optional[List[str]] = Query(None),
    featured: Optional[bool] = None,
    in_stock: Optional[bool] = None,
    sort_by: SortField = "created",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(catalog_ops.DEFAULT_PAGE_SIZE, ge=1, le=catalog_ops.MAX_PAGE_SIZE),
    include_inactive: bool = False,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Filtered, sorted, paginated catalog. Inactive products are staff-only."""
    items, total = await catalog_ops.search_products(
        db,
        query=q,
        category_id=category_id,
        category_slug=category,
        min_price=min_price,
        max_price=max_price,
        tags=tags,
        is_featured=featured,
        in_stock=in_stock,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
        include_inactive=include_inactive and bool(current_user and current_user.is_staff),
    )
    return _page(items, total, page, limit)


@router.get("/featured", response_model=list[ProductResponse])
async def featured_products(
    limit: int = Query(8, ge=1, le=50),
    db: AsyncSession = Depends(get_async_db),
):
    items, _ = await catalog_ops.search_products(
        db, is_featured=True, sort_by="created", limit=limit
    )
    return items


@router.get("/search", response_model=ProductListResponse)
async def search_products(
    q: str = Query(..., min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(catalog_ops.DEFAULT_PAGE_SIZE, ge=1, le=catalog_ops.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await catalog_ops.search_products(
        db, query=q, page=page, limit=limit
    )
    return _page(items, total, page, limit)


@router.get("/slug/{slug}", response_model=ProductResponse)
async def get_product_by_slug(slug: str, db: AsyncSession = Depends(get_async_db)):
    return await catalog_ops.get_product(db, slug)


# ============================================================================
# INVENTORY (STAFF)
# ============================================================================


@router.get("/inventory/status", response_model=list[InventoryStatusItem])
async def inventory_status(
    low_stock_only: bool = False,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Stock levels for every product and variant."""
    return await catalog_ops.get_inventory_status(db, low_stock_only=low_stock_only)


@router.post("/{product_id}/stock", response_model=ProductResponse)
async def adjust_stock(
    product_id: uuid.UUID,
    payload: StockAdjustment,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.adjust_stock(
        db,
        product_id=product_id,
        delta=payload.quantity_change,
        variant_id=payload.variant_id,
        reason=payload.reason,
        performed_by=str(current_user.user_id),
    )


# ============================================================================
# PRODUCT DETAIL / MANAGEMENT
# ============================================================================


@router.get("/{id_or_slug}", response_model=ProductResponse)
async def get_product(
    id_or_slug: str,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.get_product(
        db,
        id_or_slug,
        include_inactive=bool(current_user and current_user.is_staff),
    )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.create_product(
        db, data=payload.model_dump(), performed_by=str(current_user.user_id)
    )


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.update_product(
        db,
        product_id,
        data=payload.model_dump(exclude_unset=True),
        performed_by=str(current_user.user_id),
    )


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: uuid.UUID,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    await catalog_ops.delete_product(db, product_id)


# ============================================================================
# VARIANTS
# ============================================================================


@router.post(
    "/{product_id}/variants",
    response_model=ProductVariantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_variant(
    product_id: uuid.UUID,
    payload: ProductVariantCreate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.create_variant(db, product_id, data=payload.model_dump())


@router.put("/{product_id}/variants/{variant_id}", response_model=ProductVariantResponse)
async def update_variant(
    product_id: uuid.UUID,
    variant_id: uuid.UUID,
    payload: ProductVariantUpdate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.update_variant(
        db, product_id, variant_id, data=payload.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{product_id}/variants/{variant_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_variant(
    product_id: uuid.UUID,
    variant_id: uuid.UUID,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    await catalog_ops.delete_variant(db, product_id, variant_id)
