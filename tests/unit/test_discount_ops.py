"""Unit tests for discount code pricing and validation."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from libs.common.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from services.store_service.models import DiscountType, DiscountUsage
from services.store_service.services import discount_ops
from tests.factories import DiscountFactory, UserFactory


async def _persist(db, **overrides):
    discount = DiscountFactory.create(**overrides)
    db.add(discount)
    await db.commit()
    return discount


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_percentage_capped_by_max_discount():
    discount = DiscountFactory.create(
        discount_type=DiscountType.PERCENTAGE,
        value=Decimal("20"),
        max_discount_amount=Decimal("50000"),
    )

    assert discount_ops.calculate_discount_amount(discount, Decimal("100000")) == Decimal(
        "20000"
    )
    assert discount_ops.calculate_discount_amount(discount, Decimal("1000000")) == Decimal(
        "50000"
    )


@pytest.mark.unit
def test_fixed_amount_capped_by_subtotal():
    discount = DiscountFactory.create(
        discount_type=DiscountType.FIXED_AMOUNT, value=Decimal("80000")
    )

    assert discount_ops.calculate_discount_amount(discount, Decimal("60000")) == Decimal(
        "60000"
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validate_is_case_insensitive(db_session):
    await _persist(db_session, code="SUMMER15", value=Decimal("15"))

    quote = await discount_ops.validate_discount(
        db_session, code=" summer15 ", user_id=uuid.uuid4(), subtotal=Decimal("200000")
    )

    assert quote.amount == Decimal("30000")
    assert quote.remaining_uses == 10


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides, error, code",
    [
        ({"is_active": False}, NotFoundError, "INVALID_DISCOUNT_CODE"),
        (
            {"valid_until": datetime.now(timezone.utc) - timedelta(hours=1)},
            ValidationError,
            "DISCOUNT_EXPIRED",
        ),
        (
            {"valid_from": datetime.now(timezone.utc) + timedelta(days=2)},
            ValidationError,
            "DISCOUNT_NOT_STARTED",
        ),
        ({"max_uses": 3, "used_count": 3}, ValidationError, "DISCOUNT_LIMIT_REACHED"),
        (
            {"min_order_amount": Decimal("300000")},
            ValidationError,
            "MINIMUM_ORDER_NOT_MET",
        ),
        (
            {"applicable_users": [str(uuid.uuid4())]},
            PermissionDeniedError,
            "DISCOUNT_NOT_APPLICABLE",
        ),
    ],
)
async def test_validate_restrictions(db_session, overrides, error, code):
    discount = await _persist(db_session, **overrides)

    with pytest.raises(error) as exc_info:
        await discount_ops.validate_discount(
            db_session,
            code=discount.code,
            user_id=uuid.uuid4(),
            subtotal=Decimal("200000"),
        )

    assert exc_info.value.code == code


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_code(db_session):
    with pytest.raises(NotFoundError):
        await discount_ops.validate_discount(
            db_session, code="NOPE", user_id=uuid.uuid4(), subtotal=Decimal("1")
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_restricted_code_valid_for_listed_user(db_session):
    user_id = uuid.uuid4()
    discount = await _persist(db_session, applicable_users=[str(user_id)])

    quote = await discount_ops.validate_discount(
        db_session, code=discount.code, user_id=user_id, subtotal=Decimal("100000")
    )

    assert quote.amount == Decimal("10000")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_first_time_only_code_used_once(db_session):
    user = UserFactory.create()
    db_session.add(user)
    discount = await _persist(db_session, is_first_time_only=True)
    db_session.add(
        DiscountUsage(
            discount_code_id=discount.id, user_id=user.id, amount=Decimal("10000")
        )
    )
    await db_session.commit()

    with pytest.raises(PermissionDeniedError) as exc_info:
        await discount_ops.validate_discount(
            db_session, code=discount.code, user_id=user.id, subtotal=Decimal("100000")
        )

    assert exc_info.value.code == "DISCOUNT_ALREADY_USED"


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_normalises_code_and_rejects_duplicates(db_session):
    data = {
        "code": "tet2025",
        "discount_type": DiscountType.FIXED_AMOUNT,
        "value": Decimal("25000"),
    }

    discount = await discount_ops.create_discount(
        db_session, data=data, performed_by="admin"
    )
    assert discount.code == "TET2025"

    with pytest.raises(ConflictError):
        await discount_ops.create_discount(
            db_session, data={**data, "code": "TET2025"}, performed_by="admin"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_percentage_over_hundred_rejected(db_session):
    with pytest.raises(ValidationError) as exc_info:
        await discount_ops.create_discount(
            db_session,
            data={
                "code": "TOOMUCH",
                "discount_type": DiscountType.PERCENTAGE,
                "value": Decimal("150"),
            },
            performed_by="admin",
        )

    assert exc_info.value.code == "INVALID_DISCOUNT"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validity_window_must_be_ordered(db_session):
    now = datetime.now(timezone.utc)

    with pytest.raises(ValidationError):
        await discount_ops.create_discount(
            db_session,
            data={
                "code": "BACKWARDS",
                "discount_type": DiscountType.PERCENTAGE,
                "value": Decimal("5"),
                "valid_from": now,
                "valid_until": now - timedelta(days=1),
            },
            performed_by="admin",
        )
