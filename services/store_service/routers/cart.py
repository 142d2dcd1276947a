"""Cart router: the signed-in customer's cart."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.schemas import (
    CartItemCreate,
    CartItemResponse,
    CartItemUpdate,
    CartResponse,
    CartValidationResponse,
)
from services.store_service.services import cart_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/cart", tags=["cart"])


def _cart_response(view: cart_ops.CartView) -> CartResponse:
    items = []
    for line in view.lines:
        product, variant = line.item.product, line.item.variant
        items.append(
            CartItemResponse(
                id=line.item.id,
                product_id=product.id,
                variant_id=variant.id if variant else None,
                product_name=product.name,
                product_slug=product.slug,
                variant_name=variant.variant_name if variant else None,
                sku=variant.sku if variant else product.sku,
                image=product.images[0] if product.images else None,
                quantity=line.item.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
                available_stock=line.available_stock,
                is_available=line.is_available,
                customizations=line.item.customizations,
            )
        )
    return CartResponse(
        items=items,
        item_count=view.item_count,
        subtotal=view.subtotal,
        estimated_tax=view.estimated_tax,
        estimated_shipping=view.estimated_shipping,
        estimated_total=view.estimated_total,
        loyalty_points=view.loyalty_points,
        loyalty_points_value=view.loyalty_points_value,
    )


@router.get("", response_model=CartResponse)
async def get_cart(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Cart lines priced from the live catalog, with estimated totals."""
    view = await cart_ops.get_cart(db, user_id=current_user.user_id)
    return _cart_response(view)


@router.get("/count")
async def get_cart_count(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
) -> dict[str, int]:
    view = await cart_ops.get_cart(db, user_id=current_user.user_id)
    return {"count": view.item_count}


@router.get("/validate", response_model=CartValidationResponse)
async def validate_cart(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    issues = await cart_ops.validate_cart_stock(db, user_id=current_user.user_id)
    return CartValidationResponse(is_valid=not issues, issues=issues)


@router.post("/add", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    payload: CartItemCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    view = await cart_ops.add_to_cart(
        db,
        user_id=current_user.user_id,
        product_id=payload.product_id,
        variant_id=payload.variant_id,
        quantity=payload.quantity,
        customizations=payload.customizations,
    )
    return _cart_response(view)


@router.put("/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: uuid.UUID,
    payload: CartItemUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    view = await cart_ops.update_cart_item(
        db,
        user_id=current_user.user_id,
        item_id=item_id,
        quantity=payload.quantity,
        customizations=payload.customizations,
    )
    return _cart_response(view)


@router.delete("/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    view = await cart_ops.remove_cart_item(
        db, user_id=current_user.user_id, item_id=item_id
    )
    return _cart_response(view)


@router.delete("/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await cart_ops.clear_cart(db, user_id=current_user.user_id)
