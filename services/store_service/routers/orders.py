"""Order router: checkout, order history, tracking, cancellation and staff updates."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user, require_staff
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.models import OrderStatus, PaymentStatus
from services.store_service.schemas import (
    OrderCancelRequest,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderSummaryResponse,
    OrderTrackingResponse,
    Pagination,
)
from services.store_service.services import order_ops
from services.store_service.services.catalog_ops import total_pages
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/orders", tags=["orders"])


async def _order_page(
    db: AsyncSession,
    *,
    user_id: Optional[uuid.UUID],
    page: int,
    limit: int,
    **filters,
) -> OrderListResponse:
    orders, total = await order_ops.list_orders(
        db, user_id=user_id, page=page, limit=limit, **filters
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=total_pages(total, limit)
        ),
        status_counts=await order_ops.status_counts(db, user_id=user_id),
    )


# ============================================================================
# CUSTOMER
# ============================================================================


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Place an order from the current cart."""
    return await order_ops.create_order(
        db,
        user_id=current_user.user_id,
        shipping_address=payload.shipping_address.model_dump(),
        billing_address=(
            payload.billing_address.model_dump() if payload.billing_address else None
        ),
        payment_method=payload.payment_method,
        discount_code=payload.discount_code,
        redeem_points=payload.loyalty_points_to_redeem,
        customer_notes=payload.customer_notes,
    )


@router.get("", response_model=OrderListResponse)
async def list_my_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await _order_page(
        db, user_id=current_user.user_id, page=page, limit=limit, status=status_filter
    )


@router.get("/summary/user", response_model=OrderSummaryResponse)
async def my_order_summary(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_ops.get_order_summary(db, user_id=current_user.user_id)


@router.get("/track/{order_number}", response_model=OrderTrackingResponse)
async def track_order(
    order_number: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_ops.track_order(
        db, order_number=order_number, user=current_user
    )


# ============================================================================
# STAFF
# ============================================================================


@router.get("/admin/all", response_model=OrderListResponse)
async def list_all_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: Optional[str] = Query(None, max_length=50),
    user_id: Optional[uuid.UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Every customer's orders with filters (staff only)."""
    return await _order_page(
        db,
        user_id=user_id,
        page=page,
        limit=limit,
        status=status_filter,
        payment_status=payment_status,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    current_user: AuthUser = Depends(require_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_ops.update_order_status(
        db,
        order_id=order_id,
        new_status=payload.status,
        performed_by=current_user.user_id,
        reason=payload.reason,
        tracking_number=payload.tracking_number,
        admin_notes=payload.admin_notes,
        payment_status=payload.payment_status,
    )


# ============================================================================
# SINGLE ORDER
# ============================================================================


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_ops.get_order(db, order_id=order_id, user=current_user)


@router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    payload: Optional[OrderCancelRequest] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_ops.cancel_order(
        db,
        order_id=order_id,
        user_id=current_user.user_id,
        reason=payload.reason if payload else None,
    )
