"""Unit tests for cart_ops: merging lines, quantity limits and stock checks."""

import uuid
from decimal import Decimal

import pytest
from libs.common.errors import NotFoundError, ValidationError
from services.store_service.services import cart_ops
from tests.factories import ProductFactory, UserFactory, VariantFactory


async def _user_and_product(db, **product_overrides):
    user = UserFactory.create(loyalty_points=250)
    product = ProductFactory.create(**product_overrides)
    db.add_all([user, product])
    await db.commit()
    return user, product


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_to_cart_prices_from_catalog(db_session):
    user, product = await _user_and_product(
        db_session, base_price=Decimal("150000"), stock_quantity=20
    )

    view = await cart_ops.add_to_cart(
        db_session, user_id=user.id, product_id=product.id, quantity=2
    )

    assert view.item_count == 2
    assert view.subtotal == Decimal("300000")
    assert view.estimated_tax == Decimal("24000")
    assert view.estimated_shipping == Decimal("30000")
    assert view.estimated_total == Decimal("354000")
    assert view.loyalty_points == 250
    assert view.loyalty_points_value == Decimal("25000")
    assert view.lines[0].is_available


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adding_same_product_merges_lines(db_session):
    user, product = await _user_and_product(db_session)

    await cart_ops.add_to_cart(
        db_session, user_id=user.id, product_id=product.id, quantity=2
    )
    view = await cart_ops.add_to_cart(
        db_session,
        user_id=user.id,
        product_id=product.id,
        quantity=3,
        customizations={"grind": "fine"},
    )

    assert len(view.lines) == 1
    assert view.lines[0].item.quantity == 5
    assert view.lines[0].item.customizations == {"grind": "fine"}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_variants_are_separate_lines(db_session):
    user, product = await _user_and_product(db_session)
    variant = VariantFactory.create(product_id=product.id)
    db_session.add(variant)
    await db_session.commit()

    await cart_ops.add_to_cart(
        db_session, user_id=user.id, product_id=product.id, quantity=1
    )
    view = await cart_ops.add_to_cart(
        db_session,
        user_id=user.id,
        product_id=product.id,
        variant_id=variant.id,
        quantity=1,
    )

    assert len(view.lines) == 2
    assert view.subtotal == Decimal("100000") + Decimal("180000")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_quantity_limit_per_line(db_session):
    user, product = await _user_and_product(db_session, stock_quantity=100)
    await cart_ops.add_to_cart(
        db_session, user_id=user.id, product_id=product.id, quantity=8
    )

    with pytest.raises(ValidationError) as exc_info:
        await cart_ops.add_to_cart(
            db_session, user_id=user.id, product_id=product.id, quantity=3
        )

    assert exc_info.value.code == "QUANTITY_LIMIT_EXCEEDED"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cannot_add_more_than_in_stock(db_session):
    user, product = await _user_and_product(db_session, stock_quantity=2)

    with pytest.raises(ValidationError) as exc_info:
        await cart_ops.add_to_cart(
            db_session, user_id=user.id, product_id=product.id, quantity=3
        )

    assert exc_info.value.code == "INSUFFICIENT_STOCK"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_inactive_product_cannot_be_added(db_session):
    user, product = await _user_and_product(db_session, is_active=False)

    with pytest.raises(ValidationError) as exc_info:
        await cart_ops.add_to_cart(
            db_session, user_id=user.id, product_id=product.id, quantity=1
        )

    assert exc_info.value.code == "PRODUCT_NOT_AVAILABLE"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_variant_of_another_product_rejected(db_session):
    user, product = await _user_and_product(db_session)
    other = ProductFactory.create()
    db_session.add(other)
    await db_session.flush()
    variant = VariantFactory.create(product_id=other.id)
    db_session.add(variant)
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await cart_ops.add_to_cart(
            db_session,
            user_id=user.id,
            product_id=product.id,
            variant_id=variant.id,
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_update_and_remove_own_items_only(db_session):
    user, product = await _user_and_product(db_session)
    intruder = UserFactory.create()
    db_session.add(intruder)
    await db_session.commit()
    view = await cart_ops.add_to_cart(
        db_session, user_id=user.id, product_id=product.id, quantity=1
    )
    item_id = view.lines[0].item.id

    view = await cart_ops.update_cart_item(
        db_session, user_id=user.id, item_id=item_id, quantity=4
    )
    assert view.item_count == 4

    with pytest.raises(NotFoundError):
        await cart_ops.remove_cart_item(
            db_session, user_id=intruder.id, item_id=item_id
        )

    view = await cart_ops.remove_cart_item(
        db_session, user_id=user.id, item_id=item_id
    )
    assert view.lines == []
    assert view.subtotal == Decimal("0")
    assert view.estimated_shipping == Decimal("0")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validate_reports_stock_drop_and_deactivation(db_session):
    user, product = await _user_and_product(db_session, stock_quantity=10)
    gone = ProductFactory.create(name="Sencha Green Tea")
    db_session.add(gone)
    await db_session.commit()
    await cart_ops.add_to_cart(
        db_session, user_id=user.id, product_id=product.id, quantity=5
    )
    await cart_ops.add_to_cart(
        db_session, user_id=user.id, product_id=gone.id, quantity=1
    )

    product.stock_quantity = 3
    gone.is_active = False
    await db_session.commit()

    issues = await cart_ops.validate_cart_stock(db_session, user_id=user.id)

    assert f"Only 3 units of {product.name} available" in issues
    assert "Sencha Green Tea is no longer available" in issues


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_product(db_session):
    user, _ = await _user_and_product(db_session)

    with pytest.raises(NotFoundError) as exc_info:
        await cart_ops.add_to_cart(
            db_session, user_id=user.id, product_id=uuid.uuid4()
        )

    assert exc_info.value.code == "PRODUCT_NOT_FOUND"
