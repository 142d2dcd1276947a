"""Integration tests for /api/discounts."""

from decimal import Decimal

import pytest
from services.store_service.models import UserRole
from tests.conftest import auth_headers
from tests.factories import DiscountFactory, UserFactory


@pytest.mark.asyncio
@pytest.mark.integration
async def test_validate_prices_code_for_subtotal(client, db_session):
    user = UserFactory.create()
    discount = DiscountFactory.create(
        code="CAPHE20", value=Decimal("20"), max_discount_amount=Decimal("50000")
    )
    db_session.add_all([user, discount])
    await db_session.commit()

    response = await client.post(
        "/api/discounts/validate",
        json={"code": "caphe20", "subtotal": "400000"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["valid"] is True
    assert data["code"] == "CAPHE20"
    assert data["discount_type"] == "PERCENTAGE"
    assert Decimal(data["discount_amount"]) == Decimal("50000")
    assert data["remaining_uses"] == 10


@pytest.mark.asyncio
@pytest.mark.integration
async def test_validate_unknown_and_minimum(client, db_session):
    user = UserFactory.create()
    discount = DiscountFactory.create(
        code="BIGORDER", min_order_amount=Decimal("1000000")
    )
    db_session.add_all([user, discount])
    await db_session.commit()
    headers = auth_headers(user)

    unknown = await client.post(
        "/api/discounts/validate",
        json={"code": "NOSUCHCODE", "subtotal": "100000"},
        headers=headers,
    )
    too_small = await client.post(
        "/api/discounts/validate",
        json={"code": "BIGORDER", "subtotal": "100000"},
        headers=headers,
    )

    assert unknown.status_code == 404
    assert unknown.json()["code"] == "INVALID_DISCOUNT_CODE"
    assert too_small.status_code == 400
    assert too_small.json()["code"] == "MINIMUM_ORDER_NOT_MET"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_discount_crud_is_staff_only(client, db_session):
    customer = UserFactory.create()
    staff = UserFactory.create(role=UserRole.STAFF)
    db_session.add_all([customer, staff])
    await db_session.commit()
    staff_headers = auth_headers(staff)
    payload = {
        "code": "tet2026",
        "description": "Lunar new year",
        "discount_type": "FIXED_AMOUNT",
        "value": "30000",
        "max_uses": 100,
    }

    forbidden = await client.post(
        "/api/discounts", json=payload, headers=auth_headers(customer)
    )
    assert forbidden.status_code == 403

    created = await client.post("/api/discounts", json=payload, headers=staff_headers)
    assert created.status_code == 201, created.text
    discount_id = created.json()["id"]
    assert created.json()["code"] == "TET2026"
    assert created.json()["used_count"] == 0

    duplicate = await client.post("/api/discounts", json=payload, headers=staff_headers)
    assert duplicate.status_code == 409

    updated = await client.put(
        f"/api/discounts/{discount_id}",
        json={"value": "45000", "is_active": False},
        headers=staff_headers,
    )
    assert updated.status_code == 200
    assert Decimal(updated.json()["value"]) == Decimal("45000")

    listing = await client.get(
        "/api/discounts", params={"active_only": "true"}, headers=staff_headers
    )
    assert listing.json()["items"] == []

    deleted = await client.delete(f"/api/discounts/{discount_id}", headers=staff_headers)
    assert deleted.status_code == 204
    missing = await client.get(f"/api/discounts/{discount_id}", headers=staff_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_percentage_over_hundred_rejected(client, db_session):
    staff = UserFactory.create(role=UserRole.ADMIN)
    db_session.add(staff)
    await db_session.commit()

    response = await client.post(
        "/api/discounts",
        json={"code": "FREEBIE", "discount_type": "PERCENTAGE", "value": "120"},
        headers=auth_headers(staff),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DISCOUNT"
