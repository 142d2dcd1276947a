"""Unit tests for order placement, cancellation and status changes.

Tests call order_ops directly with the db_session fixture.
"""

from decimal import Decimal

import pytest
from libs.common.errors import NotFoundError, ValidationError
from services.store_service.models import (
    CartItem,
    DiscountCode,
    FulfillmentStatus,
    LoyaltyTransaction,
    LoyaltyTransactionType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    ProductVariant,
    User,
)
from services.store_service.services import order_ops
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql
from tests.factories import (
    CartItemFactory,
    DiscountFactory,
    ProductFactory,
    UserFactory,
    VariantFactory,
)

ADDRESS = {
    "full_name": "Nguyen Van A",
    "phone": "0901234567",
    "address_line": "12 Le Loi",
    "district": "Quan 1",
    "city": "Ho Chi Minh",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _checkout_setup(db, *, points=0, price="100000", stock=10, quantity=2):
    """User with ``quantity`` units of one product in the cart."""
    user = UserFactory.create(loyalty_points=points)
    product = ProductFactory.create(base_price=Decimal(price), stock_quantity=stock)
    db.add_all([user, product])
    await db.flush()
    db.add(CartItemFactory.create(user.id, product.id, quantity=quantity))
    await db.commit()
    return user, product


async def _stock(db, product_id):
    return await db.scalar(
        select(Product.stock_quantity)
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    )


async def _points(db, user_id):
    return await db.scalar(select(User.loyalty_points).where(User.id == user_id))


# ---------------------------------------------------------------------------
# create_order
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_computes_totals_and_consumes_cart(db_session):
    user, product = await _checkout_setup(db_session)

    order = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )

    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert order.fulfillment_status == FulfillmentStatus.PENDING
    assert order.subtotal == Decimal("200000")
    assert order.tax_amount == Decimal("16000")
    assert order.shipping_amount == Decimal("30000")
    assert order.total_amount == Decimal("246000")
    assert order.points_earned == 24
    assert order.billing_address == ADDRESS
    assert order.order_number.startswith("CT")
    assert len(order.order_number) == 12

    assert len(order.items) == 1
    assert order.items[0].unit_price == Decimal("100000")
    assert order.items[0].line_total == Decimal("200000")
    assert len(order.status_history) == 1
    assert order.status_history[0].to_status == OrderStatus.PENDING

    assert await _stock(db_session, product.id) == 8
    assert await db_session.scalar(select(func.count(CartItem.id))) == 0
    assert await _points(db_session, user.id) == 24


@pytest.mark.asyncio
@pytest.mark.unit
async def test_order_numbers_increment_within_a_day(db_session):
    user, product = await _checkout_setup(db_session, quantity=1)
    first = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )
    db_session.add(CartItemFactory.create(user.id, product.id, quantity=1))
    await db_session.commit()

    second = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )

    assert first.order_number[:8] == second.order_number[:8]
    assert int(second.order_number[8:]) == int(first.order_number[8:]) + 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_prices_variant_lines(db_session):
    user = UserFactory.create()
    product = ProductFactory.create(base_price=Decimal("100000"), stock_quantity=0)
    db_session.add_all([user, product])
    await db_session.flush()
    variant = VariantFactory.create(
        product_id=product.id, price_adjustment=Decimal("80000"), stock_quantity=5
    )
    db_session.add(variant)
    await db_session.flush()
    db_session.add(
        CartItemFactory.create(user.id, product.id, variant_id=variant.id, quantity=3)
    )
    await db_session.commit()

    order = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )

    item = order.items[0]
    assert item.unit_price == Decimal("180000")
    assert item.variant_name == "500g"
    assert item.sku == variant.sku
    assert order.shipping_amount == Decimal("0")
    await db_session.refresh(variant)
    assert variant.stock_quantity == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_empty_cart(db_session):
    user = UserFactory.create()
    db_session.add(user)
    await db_session.commit()

    with pytest.raises(ValidationError) as exc_info:
        await order_ops.create_order(
            db_session, user_id=user.id, shipping_address=ADDRESS
        )

    assert exc_info.value.code == "EMPTY_CART"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_insufficient_stock_changes_nothing(db_session):
    user, product = await _checkout_setup(db_session, stock=1, quantity=2)
    product_id = product.id

    with pytest.raises(ValidationError) as exc_info:
        await order_ops.create_order(
            db_session, user_id=user.id, shipping_address=ADDRESS
        )

    assert exc_info.value.code == "INSUFFICIENT_STOCK"
    assert await _stock(db_session, product_id) == 1
    assert await db_session.scalar(select(func.count(CartItem.id))) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_inactive_product(db_session):
    user, product = await _checkout_setup(db_session)
    product.is_active = False
    await db_session.commit()

    with pytest.raises(ValidationError) as exc_info:
        await order_ops.create_order(
            db_session, user_id=user.id, shipping_address=ADDRESS
        )

    assert exc_info.value.code == "PRODUCT_NOT_AVAILABLE"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_below_minimum_value(db_session):
    user, _ = await _checkout_setup(db_session, price="20000", quantity=1)

    with pytest.raises(ValidationError) as exc_info:
        await order_ops.create_order(
            db_session, user_id=user.id, shipping_address=ADDRESS
        )

    assert exc_info.value.code == "MINIMUM_ORDER_NOT_MET"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_redemption_below_minimum_rejected(db_session):
    user, _ = await _checkout_setup(db_session, points=500)

    with pytest.raises(ValidationError) as exc_info:
        await order_ops.create_order(
            db_session, user_id=user.id, shipping_address=ADDRESS, redeem_points=30
        )

    assert exc_info.value.code == "MINIMUM_REDEMPTION_NOT_MET"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_redemption_capped_and_ledger_written(db_session):
    user, _ = await _checkout_setup(db_session, points=1000)

    order = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS, redeem_points=1000
    )

    assert order.points_redeemed == 492
    assert order.loyalty_discount == Decimal("49200")
    assert order.total_amount == Decimal("196800")
    assert order.points_earned == 19
    assert await _points(db_session, user.id) == 1000 - 492 + 19

    types = (
        await db_session.execute(
            select(LoyaltyTransaction.transaction_type).where(
                LoyaltyTransaction.order_id == order.id
            )
        )
    ).scalars().all()
    assert set(types) == {
        LoyaltyTransactionType.REDEEMED_DISCOUNT,
        LoyaltyTransactionType.EARNED_PURCHASE,
    }


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_with_discount_code(db_session):
    user, _ = await _checkout_setup(db_session)
    discount = DiscountFactory.create(code="WELCOME10", value=Decimal("10"))
    db_session.add(discount)
    await db_session.commit()

    order = await order_ops.create_order(
        db_session,
        user_id=user.id,
        shipping_address=ADDRESS,
        discount_code="welcome10",
    )

    assert order.discount_code == "WELCOME10"
    assert order.coupon_discount == Decimal("20000")
    assert order.discount_amount == Decimal("20000")
    assert order.total_amount == Decimal("226000")
    used = await db_session.scalar(
        select(DiscountCode.used_count).where(DiscountCode.id == discount.id)
    )
    assert used == 1


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_restores_stock_points_and_discount(db_session):
    user, product = await _checkout_setup(db_session, points=1000)
    discount = DiscountFactory.create(code="BREW5", value=Decimal("5"))
    db_session.add(discount)
    await db_session.commit()
    order = await order_ops.create_order(
        db_session,
        user_id=user.id,
        shipping_address=ADDRESS,
        discount_code="BREW5",
        redeem_points=100,
    )

    cancelled = await order_ops.cancel_order(
        db_session, order_id=order.id, user_id=user.id, reason="Changed my mind"
    )

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert cancelled.status_history[-1].reason == "Changed my mind"
    assert await _stock(db_session, product.id) == 10
    assert await _points(db_session, user.id) == 1000
    await db_session.refresh(discount)
    assert discount.used_count == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_customer_cannot_cancel_after_processing(db_session):
    user, _ = await _checkout_setup(db_session)
    order = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )
    for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING):
        await order_ops.update_order_status(
            db_session, order_id=order.id, new_status=status, performed_by=user.id
        )

    with pytest.raises(ValidationError) as exc_info:
        await order_ops.cancel_order(db_session, order_id=order.id, user_id=user.id)

    assert exc_info.value.code == "ORDER_CANNOT_BE_CANCELLED"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_someone_elses_order_is_not_found(db_session):
    user, _ = await _checkout_setup(db_session)
    other = UserFactory.create()
    db_session.add(other)
    await db_session.commit()
    order = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )

    with pytest.raises(NotFoundError):
        await order_ops.cancel_order(db_session, order_id=order.id, user_id=other.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_staff_cancel_from_processing_restores_everything(db_session):
    user, product = await _checkout_setup(db_session, points=1000)
    discount = DiscountFactory.create(code="ROAST10", value=Decimal("10"))
    db_session.add(discount)
    await db_session.commit()
    order = await order_ops.create_order(
        db_session,
        user_id=user.id,
        shipping_address=ADDRESS,
        discount_code="ROAST10",
        redeem_points=100,
    )
    assert await _stock(db_session, product.id) == 8
    for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING):
        await order_ops.update_order_status(
            db_session, order_id=order.id, new_status=status, performed_by=user.id
        )

    cancelled = await order_ops.update_order_status(
        db_session,
        order_id=order.id,
        new_status=OrderStatus.CANCELLED,
        performed_by=user.id,
        reason="Out of roasting capacity",
    )

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    transitions = [(h.from_status, h.to_status) for h in cancelled.status_history]
    assert (OrderStatus.PROCESSING, OrderStatus.CANCELLED) in transitions
    assert await _stock(db_session, product.id) == 10
    assert await _points(db_session, user.id) == 1000
    await db_session.refresh(discount)
    assert discount.used_count == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_skips_lines_whose_variant_was_removed(db_session):
    user = UserFactory.create()
    product = ProductFactory.create(base_price=Decimal("100000"), stock_quantity=0)
    db_session.add_all([user, product])
    await db_session.flush()
    variant = VariantFactory.create(product_id=product.id, stock_quantity=5)
    db_session.add(variant)
    await db_session.flush()
    db_session.add(
        CartItemFactory.create(user.id, product.id, variant_id=variant.id, quantity=3)
    )
    await db_session.commit()
    order = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )
    variant_id = variant.id
    await db_session.execute(delete(ProductVariant).where(ProductVariant.id == variant_id))
    db_session.expunge(variant)
    await db_session.commit()

    cancelled = await order_ops.cancel_order(
        db_session, order_id=order.id, user_id=user.id
    )

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.items[0].variant_id == variant_id
    assert await _stock(db_session, product.id) == 0


@pytest.mark.unit
def test_order_mutations_lock_the_order_row():
    dialect = postgresql.dialect()

    locked = str(order_ops._order_query(lock=True).compile(dialect=dialect))
    plain = str(order_ops._order_query().compile(dialect=dialect))

    assert "FOR UPDATE OF orders" in locked
    assert "FOR UPDATE" not in plain


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_transition_graph():
    assert order_ops.can_transition(OrderStatus.PENDING, OrderStatus.CONFIRMED)
    assert order_ops.can_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED)
    assert not order_ops.can_transition(OrderStatus.PENDING, OrderStatus.DELIVERED)
    assert not order_ops.can_transition(OrderStatus.CANCELLED, OrderStatus.PENDING)
    assert not order_ops.can_transition(OrderStatus.REFUNDED, OrderStatus.RETURNED)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_invalid_transition_rejected(db_session):
    user, _ = await _checkout_setup(db_session)
    order = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )

    with pytest.raises(ValidationError) as exc_info:
        await order_ops.update_order_status(
            db_session,
            order_id=order.id,
            new_status=OrderStatus.DELIVERED,
            performed_by=user.id,
        )

    assert exc_info.value.code == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cod_order_paid_on_delivery(db_session):
    user, _ = await _checkout_setup(db_session)
    order = await order_ops.create_order(
        db_session,
        user_id=user.id,
        shipping_address=ADDRESS,
        payment_method=PaymentMethod.COD,
    )

    for status in (
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    ):
        order = await order_ops.update_order_status(
            db_session,
            order_id=order.id,
            new_status=status,
            performed_by=user.id,
            tracking_number="VN123" if status == OrderStatus.SHIPPED else None,
        )
    assert order.shipped_at is not None
    assert order.tracking_number == "VN123"
    assert order.payment_status == PaymentStatus.PENDING

    order = await order_ops.update_order_status(
        db_session,
        order_id=order.id,
        new_status=OrderStatus.DELIVERED,
        performed_by=user.id,
    )

    assert order.fulfillment_status == FulfillmentStatus.DELIVERED
    assert order.payment_status == PaymentStatus.PAID
    assert order.paid_at is not None
    assert len(order.status_history) == 5


@pytest.mark.asyncio
@pytest.mark.unit
async def test_summary_excludes_cancelled_orders(db_session):
    user, product = await _checkout_setup(db_session, quantity=1)
    kept = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )
    db_session.add(CartItemFactory.create(user.id, product.id, quantity=1))
    await db_session.commit()
    dropped = await order_ops.create_order(
        db_session, user_id=user.id, shipping_address=ADDRESS
    )
    await order_ops.cancel_order(db_session, order_id=dropped.id, user_id=user.id)

    summary = await order_ops.get_order_summary(db_session, user_id=user.id)

    assert summary["total_orders"] == 2
    assert summary["status_counts"]["CANCELLED"] == 1
    assert summary["status_counts"]["PENDING"] == 1
    assert Decimal(summary["total_spent"]) == kept.total_amount
