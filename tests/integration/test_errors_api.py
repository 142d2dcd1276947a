"""Integration tests for the health check and the uniform error envelope."""

import pytest


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-abc-123"})

    assert response.headers["X-Request-ID"] == "req-abc-123"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_route_uses_envelope(client):
    response = await client.get("/api/not-a-route")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "message": "Not Found",
        "code": "NOT_FOUND",
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_validation_errors_list_fields(client):
    response = await client.post("/api/auth/login", json={"password": "x"})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert {"field": "email", "message": "Field required"} in body["details"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_bad_bearer_token_rejected(client):
    response = await client.get(
        "/api/orders", headers={"Authorization": "Bearer not.a.jwt"}
    )

    assert response.status_code == 401
    assert response.json()["success"] is False
