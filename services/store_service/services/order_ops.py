"""Order placement, lifecycle transitions, cancellation and order queries.

``create_order`` runs as a single transaction: the cart is read, every line
is re-validated against locked product/variant rows, stock is decremented,
loyalty points are redeemed and credited, the cart is emptied and an initial
history row is written. Any failure rolls the whole thing back.
"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.currency import ZERO
from libs.common.datetime_utils import ensure_utc, local_now, utc_now
from libs.common.errors import NotFoundError, ValidationError
from libs.common.logging import get_logger
from services.store_service.models import (
    CartItem,
    FulfillmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentMethod,
    PaymentStatus,
    Product,
    ProductVariant,
    User,
)
from services.store_service.services import discount_ops, loyalty_ops
from services.store_service.services.pricing import (
    MINIMUM_ORDER_VALUE,
    MINIMUM_REDEMPTION_POINTS,
    calculate_totals,
    points_earned,
    unit_price,
)
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

ORDER_NUMBER_PREFIX = "CT"
DELIVERY_DAYS_AFTER_SHIPPING = 2

ALLOWED_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED, OrderStatus.REFUNDED}),
    OrderStatus.RETURNED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def _order_query(lock: bool = False):
    """Order with items and history. ``lock`` takes the order row FOR UPDATE."""
    stmt = select(Order).options(
        selectinload(Order.items), selectinload(Order.status_history)
    )
    if lock:
        stmt = stmt.with_for_update(of=Order)
    return stmt


async def _fetch_order(
    db: AsyncSession, order_id: uuid.UUID, *, lock: bool = False
) -> Order:
    result = await db.execute(
        _order_query(lock)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    return order


async def generate_order_number(db: AsyncSession) -> str:
    """``CT`` + local ``YYMMDD`` + 4-digit daily sequence."""
    today = local_now(get_settings().VNPAY_TIMEZONE)
    prefix = f"{ORDER_NUMBER_PREFIX}{today:%y%m%d}"
    latest = await db.scalar(
        select(func.max(Order.order_number)).where(
            Order.order_number.like(f"{prefix}%")
        )
    )
    sequence = int(latest[len(prefix):]) + 1 if latest else 1
    return f"{prefix}{sequence:04d}"


def _history(
    order: Order,
    from_status: Optional[OrderStatus],
    to_status: OrderStatus,
    *,
    reason: Optional[str] = None,
    performed_by: Optional[uuid.UUID] = None,
) -> OrderStatusHistory:
    return OrderStatusHistory(
        order_id=order.id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        performed_by=performed_by,
    )


# ============================================================================
# ORDER PLACEMENT
# ============================================================================


async def create_order(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    shipping_address: dict,
    billing_address: Optional[dict] = None,
    payment_method: PaymentMethod = PaymentMethod.COD,
    discount_code: Optional[str] = None,
    redeem_points: int = 0,
    customer_notes: Optional[str] = None,
) -> Order:
    """Turn the user's cart into an order in one atomic unit of work."""
    settings = get_settings()
    try:
        user = await db.scalar(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not user:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        # (a) cart lines
        cart_items = list(
            (
                await db.execute(
                    select(CartItem)
                    .where(CartItem.user_id == user_id)
                    .order_by(CartItem.created_at)
                )
            )
            .scalars()
            .all()
        )
        if not cart_items:
            raise ValidationError("Cart is empty", code="EMPTY_CART")

        # Lock every product/variant touched so stock checks hold until commit
        product_ids = {item.product_id for item in cart_items}
        variant_ids = {item.variant_id for item in cart_items if item.variant_id}
        products = {
            p.id: p
            for p in (
                await db.execute(
                    select(Product)
                    .where(Product.id.in_(product_ids))
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
            ).scalars()
        }
        variants = {}
        if variant_ids:
            variants = {
                v.id: v
                for v in (
                    await db.execute(
                        select(ProductVariant)
                        .where(ProductVariant.id.in_(variant_ids))
                        .with_for_update()
                        .execution_options(populate_existing=True)
                    )
                ).scalars()
            }

        # (b) availability and stock, (c) unit prices
        lines = []
        requested: Dict[Tuple[str, uuid.UUID], int] = {}
        for item in cart_items:
            product = products.get(item.product_id)
            if not product or not product.is_active:
                raise ValidationError(
                    f"Product {product.name if product else item.product_id} is not available",
                    code="PRODUCT_NOT_AVAILABLE",
                )
            variant = None
            if item.variant_id:
                variant = variants.get(item.variant_id)
                if not variant or not variant.is_active:
                    raise ValidationError(
                        f"Variant of {product.name} is not available",
                        code="VARIANT_NOT_AVAILABLE",
                    )
            stock_row = variant if variant is not None else product
            key = ("variant" if variant is not None else "product", stock_row.id)
            requested[key] = requested.get(key, 0) + item.quantity
            if stock_row.stock_quantity < requested[key]:
                raise ValidationError(
                    f"Insufficient stock for {product.name}: "
                    f"{stock_row.stock_quantity} available",
                    code="INSUFFICIENT_STOCK",
                )
            price = unit_price(product, variant)
            lines.append((item, product, variant, stock_row, price))

        # (d) subtotal, tax, shipping
        subtotal = sum((price * item.quantity for item, _, _, _, price in lines), ZERO)
        if subtotal < MINIMUM_ORDER_VALUE:
            raise ValidationError(
                f"Minimum order value is {MINIMUM_ORDER_VALUE:,.0f} VND",
                code="MINIMUM_ORDER_NOT_MET",
            )

        quote = None
        if discount_code:
            quote = await discount_ops.validate_discount(
                db, code=discount_code, user_id=user_id, subtotal=subtotal, lock=True
            )

        # (e) loyalty redemption
        if 0 < redeem_points < MINIMUM_REDEMPTION_POINTS:
            raise ValidationError(
                f"Minimum redemption is {MINIMUM_REDEMPTION_POINTS} points",
                code="MINIMUM_REDEMPTION_NOT_MET",
            )
        totals = calculate_totals(
            subtotal,
            coupon_discount=quote.amount if quote else ZERO,
            requested_points=redeem_points,
            points_balance=user.loyalty_points,
        )

        order = Order(
            id=uuid.uuid4(),
            order_number=await generate_order_number(db),
            user_id=user.id,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            fulfillment_status=FulfillmentStatus.PENDING,
            payment_method=payment_method,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            shipping_amount=totals.shipping_amount,
            coupon_discount=totals.coupon_discount,
            loyalty_discount=totals.loyalty_discount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            discount_code=quote.discount.code if quote else None,
            points_redeemed=totals.points_redeemed,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            customer_notes=customer_notes,
        )
        db.add(order)
        await db.flush()

        # (f) snapshot lines and decrement stock
        for item, product, variant, stock_row, price in lines:
            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    variant_id=variant.id if variant else None,
                    product_name=product.name,
                    variant_name=variant.variant_name if variant else None,
                    sku=variant.sku if variant else product.sku,
                    quantity=item.quantity,
                    unit_price=price,
                    line_total=price * item.quantity,
                    customizations=item.customizations,
                    product_snapshot={
                        "slug": product.slug,
                        "image": product.images[0] if product.images else None,
                        "attributes": product.attributes,
                    },
                )
            )
            stock_row.stock_quantity -= item.quantity

        if quote:
            discount_ops.record_usage(
                db,
                quote,
                user_id=user.id,
                order_id=order.id,
                amount=totals.coupon_discount,
            )

        if totals.points_redeemed:
            loyalty_ops.redeem_points(
                db,
                user,
                points=totals.points_redeemed,
                order_id=order.id,
                order_number=order.order_number,
            )

        # (g) credit earned points
        earned = points_earned(totals.total_amount, settings.LOYALTY_VND_PER_POINT_EARNED)
        order.points_earned = earned
        if earned:
            loyalty_ops.earn_points(
                db,
                user,
                points=earned,
                order_id=order.id,
                order_number=order.order_number,
            )

        # (h) history, (i) empty the cart
        db.add(_history(order, None, OrderStatus.PENDING, reason="Order placed"))
        await db.execute(delete(CartItem).where(CartItem.user_id == user.id))

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Order %s placed by %s: total=%s redeemed=%d earned=%d",
        order.order_number,
        user_id,
        totals.total_amount,
        totals.points_redeemed,
        earned,
    )
    return await _fetch_order(db, order.id)


# ============================================================================
# CANCELLATION / STATUS CHANGES
# ============================================================================


async def _restore_order_effects(db: AsyncSession, order: Order) -> None:
    """Put back stock, redeemed points and the discount use; take back earned points."""
    for item in order.items:
        if item.variant_id:
            variant = await db.get(ProductVariant, item.variant_id, with_for_update=True)
            if variant:
                variant.stock_quantity += item.quantity
            else:
                logger.warning(
                    "Order %s: variant %s no longer exists, stock not restored",
                    order.order_number,
                    item.variant_id,
                )
            continue
        if item.product_id:
            product = await db.get(Product, item.product_id, with_for_update=True)
            if product:
                product.stock_quantity += item.quantity

    user = await db.get(User, order.user_id, with_for_update=True)
    if user:
        if order.points_redeemed:
            loyalty_ops.restore_redeemed_points(
                db,
                user,
                points=order.points_redeemed,
                order_id=order.id,
                order_number=order.order_number,
            )
        if order.points_earned:
            loyalty_ops.reverse_earned_points(
                db,
                user,
                points=order.points_earned,
                order_id=order.id,
                order_number=order.order_number,
            )

    if order.discount_code:
        await discount_ops.release_usage(db, order_id=order.id)

    order.cancelled_at = utc_now()


async def cancel_order(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    user_id: uuid.UUID,
    reason: Optional[str] = None,
) -> Order:
    """Customer cancellation, allowed only while PENDING or CONFIRMED."""
    try:
        order = await _fetch_order(db, order_id, lock=True)
        if order.user_id != user_id:
            raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
        if order.status not in CUSTOMER_CANCELLABLE:
            raise ValidationError(
                f"Order cannot be cancelled in status {order.status.value}",
                code="ORDER_CANNOT_BE_CANCELLED",
            )
        previous = order.status
        await _restore_order_effects(db, order)
        order.status = OrderStatus.CANCELLED
        db.add(
            _history(
                order,
                previous,
                OrderStatus.CANCELLED,
                reason=reason or "Cancelled by customer",
                performed_by=user_id,
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Order %s cancelled by customer %s", order.order_number, user_id)
    return await _fetch_order(db, order_id)


async def update_order_status(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    new_status: OrderStatus,
    performed_by: uuid.UUID,
    reason: Optional[str] = None,
    tracking_number: Optional[str] = None,
    admin_notes: Optional[str] = None,
    payment_status: Optional[PaymentStatus] = None,
) -> Order:
    """Staff transition along the fixed status graph."""
    try:
        order = await _fetch_order(db, order_id, lock=True)
        previous = order.status
        if not can_transition(previous, new_status):
            raise ValidationError(
                f"Cannot change order status from {previous.value} to {new_status.value}",
                code="INVALID_STATUS_TRANSITION",
            )

        now = utc_now()
        if new_status == OrderStatus.CANCELLED:
            await _restore_order_effects(db, order)
        elif new_status == OrderStatus.PROCESSING:
            order.fulfillment_status = FulfillmentStatus.PROCESSING
        elif new_status == OrderStatus.SHIPPED:
            order.fulfillment_status = FulfillmentStatus.SHIPPED
            order.shipped_at = now
        elif new_status == OrderStatus.DELIVERED:
            order.fulfillment_status = FulfillmentStatus.DELIVERED
            order.delivered_at = now
            if order.payment_method == PaymentMethod.COD:
                order.payment_status = PaymentStatus.PAID
                order.paid_at = order.paid_at or now
        elif new_status == OrderStatus.RETURNED:
            order.fulfillment_status = FulfillmentStatus.RETURNED
        elif new_status == OrderStatus.REFUNDED:
            order.payment_status = PaymentStatus.REFUNDED

        if payment_status is not None:
            order.payment_status = payment_status
        if tracking_number is not None:
            order.tracking_number = tracking_number
        if admin_notes is not None:
            order.admin_notes = admin_notes

        order.status = new_status
        db.add(_history(order, previous, new_status, reason=reason, performed_by=performed_by))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Order %s moved %s -> %s by %s",
        order.order_number,
        previous.value,
        new_status.value,
        performed_by,
    )
    return await _fetch_order(db, order_id)


async def record_payment_result(
    db: AsyncSession,
    order: Order,
    *,
    success: bool,
    response_code: str,
    transaction_no: Optional[str] = None,
    bank_code: Optional[str] = None,
) -> Order:
    """Apply a gateway callback. Success confirms a PENDING order."""
    order.vnpay_response_code = response_code
    order.vnpay_transaction_no = transaction_no
    order.vnpay_bank_code = bank_code
    if success:
        order.payment_status = PaymentStatus.PAID
        order.paid_at = utc_now()
        if order.status == OrderStatus.PENDING:
            order.status = OrderStatus.CONFIRMED
            db.add(
                _history(
                    order,
                    OrderStatus.PENDING,
                    OrderStatus.CONFIRMED,
                    reason=f"VNPay payment confirmed ({transaction_no})",
                )
            )
    else:
        order.payment_status = PaymentStatus.FAILED
    await db.commit()
    logger.info(
        "Recorded VNPay result for %s: success=%s code=%s",
        order.order_number,
        success,
        response_code,
    )
    return await _fetch_order(db, order.id)


# ============================================================================
# QUERIES
# ============================================================================


async def get_order(db: AsyncSession, *, order_id: uuid.UUID, user: AuthUser) -> Order:
    """Owner or staff only; others get a 404."""
    order = await _fetch_order(db, order_id)
    if order.user_id != user.user_id and not user.is_staff:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    return order


async def get_order_by_number(
    db: AsyncSession, order_number: str, *, lock: bool = False
) -> Optional[Order]:
    result = await db.execute(
        _order_query(lock).where(Order.order_number == order_number)
    )
    return result.scalar_one_or_none()


async def list_orders(
    db: AsyncSession,
    *,
    user_id: Optional[uuid.UUID] = None,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Order], int]:
    """Paginated orders, newest first. ``user_id=None`` lists everyone's."""
    filters = []
    if user_id:
        filters.append(Order.user_id == user_id)
    if status:
        filters.append(Order.status == status)
    if payment_status:
        filters.append(Order.payment_status == payment_status)
    if date_from:
        filters.append(Order.created_at >= ensure_utc(date_from))
    if date_to:
        filters.append(Order.created_at <= ensure_utc(date_to))
    if search:
        filters.append(Order.order_number.ilike(f"%{search.strip()}%"))

    total = await db.scalar(select(func.count(Order.id)).where(*filters))
    result = await db.execute(
        _order_query()
        .where(*filters)
        .order_by(Order.created_at.desc(), Order.order_number.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def status_counts(
    db: AsyncSession, *, user_id: Optional[uuid.UUID] = None
) -> Dict[str, int]:
    stmt = select(Order.status, func.count(Order.id)).group_by(Order.status)
    if user_id:
        stmt = stmt.where(Order.user_id == user_id)
    counts = {status.value: 0 for status in OrderStatus}
    for status, count in (await db.execute(stmt)).all():
        counts[OrderStatus(status).value] = count
    return counts


async def get_order_summary(db: AsyncSession, *, user_id: uuid.UUID) -> dict:
    counts = await status_counts(db, user_id=user_id)
    total_spent = await db.scalar(
        select(func.coalesce(func.sum(Order.total_amount), 0)).where(
            Order.user_id == user_id,
            Order.status.notin_([OrderStatus.CANCELLED, OrderStatus.REFUNDED]),
        )
    )
    total_points = await db.scalar(
        select(func.coalesce(func.sum(Order.points_earned), 0)).where(
            Order.user_id == user_id,
            Order.status.notin_([OrderStatus.CANCELLED, OrderStatus.REFUNDED]),
        )
    )
    return {
        "total_orders": sum(counts.values()),
        "status_counts": counts,
        "total_spent": Decimal(total_spent or 0),
        "total_points_earned": int(total_points or 0),
    }


async def track_order(db: AsyncSession, *, order_number: str, user: AuthUser) -> dict:
    order = await get_order_by_number(db, order_number)
    if not order or (order.user_id != user.user_id and not user.is_staff):
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")

    status = order.status
    estimated_delivery = ensure_utc(order.delivered_at)
    if estimated_delivery is None and status == OrderStatus.SHIPPED and order.shipped_at:
        estimated_delivery = ensure_utc(order.shipped_at) + timedelta(
            days=DELIVERY_DAYS_AFTER_SHIPPING
        )

    confirmed_or_later = (
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
    )
    return {
        "order_number": order.order_number,
        "status": status,
        "tracking_number": order.tracking_number,
        "estimated_delivery": estimated_delivery,
        "delivery_progress": {
            "confirmed": status in confirmed_or_later,
            "processing": status in confirmed_or_later[1:],
            "shipping": status in confirmed_or_later[2:],
            "delivered": status == OrderStatus.DELIVERED,
        },
        "status_history": order.status_history,
        "items": order.items,
        "shipping_address": order.shipping_address,
        "total_amount": order.total_amount,
    }
