"""Category router: public listing and tree, staff management."""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_optional_user, require_staff
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.schemas import (
    CategoryCreate,
    CategoryReorderRequest,
    CategoryResponse,
    CategoryTreeNode,
    CategoryUpdate,
)
from services.store_service.services import catalog_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/categories", tags=["categories"])


def _tree_node(node: dict) -> CategoryTreeNode:
    base = CategoryResponse.model_validate(node["category"]).model_dump()
    return CategoryTreeNode(
        **base, children=[_tree_node(child) for child in node["children"]]
    )


def _is_staff(user: Optional[AuthUser]) -> bool:
    return bool(user and user.is_staff)


@router.get("", response_model=list[CategoryResponse])
async def list_categories(
    parent_id: Optional[uuid.UUID] = None,
    featured: bool = False,
    include_inactive: bool = False,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Flat list ordered by sort order. Inactive categories are staff-only."""
    return await catalog_ops.list_categories(
        db,
        include_inactive=include_inactive and _is_staff(current_user),
        parent_id=parent_id,
        featured_only=featured,
    )


@router.get("/tree", response_model=list[CategoryTreeNode])
async def category_tree(
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    nodes = await catalog_ops.get_category_tree(
        db, include_inactive=_is_staff(current_user)
    )
    return [_tree_node(node) for node in nodes]


@router.put("/reorder", response_model=list[CategoryResponse])
async def reorder_categories(
    payload: CategoryReorderRequest,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.reorder_categories(
        db, [(item.id, item.sort_order) for item in payload.items]
    )


@router.get("/{id_or_slug}", response_model=CategoryResponse)
async def get_category(
    id_or_slug: str,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.get_category(
        db, id_or_slug, include_inactive=_is_staff(current_user)
    )


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.create_category(db, data=payload.model_dump())


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: uuid.UUID,
    payload: CategoryUpdate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.update_category(
        db, category_id, data=payload.model_dump(exclude_unset=True)
    )


@router.patch("/{category_id}/toggle", response_model=CategoryResponse)
async def toggle_category(
    category_id: uuid.UUID,
    field: Literal["is_active", "is_featured"] = Query("is_active"),
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_ops.toggle_category(db, category_id, field=field)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: uuid.UUID,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    await catalog_ops.delete_category(db, category_id)
