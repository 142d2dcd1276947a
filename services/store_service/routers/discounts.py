"""Discount code router: customer validation and staff management."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user, require_staff
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.schemas import (
    DiscountCreate,
    DiscountListResponse,
    DiscountResponse,
    DiscountUpdate,
    DiscountValidateRequest,
    DiscountValidateResponse,
    Pagination,
)
from services.store_service.services import discount_ops
from services.store_service.services.catalog_ops import total_pages
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/discounts", tags=["discounts"])


@router.post("/validate", response_model=DiscountValidateResponse)
async def validate_discount(
    payload: DiscountValidateRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Check a code for the caller and price it against ``subtotal``."""
    quote = await discount_ops.validate_discount(
        db, code=payload.code, user_id=current_user.user_id, subtotal=payload.subtotal
    )
    return DiscountValidateResponse(
        code=quote.discount.code,
        discount_type=quote.discount.discount_type,
        value=quote.discount.value,
        discount_amount=quote.amount,
        remaining_uses=quote.remaining_uses,
        description=quote.discount.description,
    )


# ============================================================================
# STAFF
# ============================================================================


@router.get("", response_model=DiscountListResponse)
async def list_discounts(
    active_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    items, total = await discount_ops.list_discounts(
        db, active_only=active_only, page=page, limit=limit
    )
    return DiscountListResponse(
        items=[DiscountResponse.model_validate(d) for d in items],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=total_pages(total, limit)
        ),
    )


@router.post("", response_model=DiscountResponse, status_code=status.HTTP_201_CREATED)
async def create_discount(
    payload: DiscountCreate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await discount_ops.create_discount(
        db, data=payload.model_dump(), performed_by=str(current_user.user_id)
    )


@router.get("/{discount_id}", response_model=DiscountResponse)
async def get_discount(
    discount_id: uuid.UUID,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await discount_ops.get_discount(db, discount_id)


@router.put("/{discount_id}", response_model=DiscountResponse)
async def update_discount(
    discount_id: uuid.UUID,
    payload: DiscountUpdate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await discount_ops.update_discount(
        db,
        discount_id,
        data=payload.model_dump(exclude_unset=True),
        performed_by=str(current_user.user_id),
    )


@router.delete("/{discount_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_discount(
    discount_id: uuid.UUID,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    await discount_ops.delete_discount(db, discount_id)
