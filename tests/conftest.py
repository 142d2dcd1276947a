import os
import tempfile
from typing import AsyncGenerator

# Settings are cached on first use, so the test environment must be in place
# before anything under libs/ or services/ is imported.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["VNPAY_USE_SIMULATOR"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="store-uploads-")

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.auth.security import create_access_token
from libs.db.base import Base
from libs.db.config import json_serializer
from libs.db.session import get_async_db
import services.store_service.models  # noqa: F401
from services.store_service.services.image_storage import (
    ImageStorage,
    get_image_storage,
)
from services.store_service.services.oauth import OAuthVerifier, get_oauth_verifier
from services.store_service.services.vnpay import VNPayClient, get_vnpay_client

TEST_VNPAY_SECRET = "test-secret-for-ipn-signing"
TEST_VNPAY_TMN_CODE = "STORETEST"

GOOGLE_TOKENS = {
    "google-valid": {
        "sub": "google-uid-1",
        "email": "google.user@coffeetea.vn",
        "email_verified": "true",
        "name": "Google User",
        "picture": "https://example.com/avatar.png",
    },
}
FACEBOOK_TOKENS = {
    "facebook-valid": {
        "id": "fb-uid-1",
        "name": "Facebook User",
        "email": "fb.user@coffeetea.vn",
        "picture": {"data": {"url": "https://example.com/fb.png"}},
    },
    "facebook-no-email": {"id": "fb-uid-2", "name": "No Email"},
}


def _identity_provider(request: httpx.Request) -> httpx.Response:
    """Stand-in for Google tokeninfo and the Facebook Graph API."""
    params = request.url.params
    if "googleapis" in request.url.host:
        data = GOOGLE_TOKENS.get(params.get("id_token"))
    else:
        data = FACEBOOK_TOKENS.get(params.get("access_token"))
    if data is None:
        return httpx.Response(400, json={"error": "invalid_token"})
    return httpx.Response(200, json=data)


def make_vnpay_client(use_simulator: bool = False) -> VNPayClient:
    return VNPayClient(
        tmn_code=TEST_VNPAY_TMN_CODE,
        hash_secret=TEST_VNPAY_SECRET,
        use_simulator=use_simulator,
    )


def auth_headers(user) -> dict:
    """Bearer header for a persisted ``User``.

    Build it before any request that may fail: an error response rolls back
    the shared session and expires the user.
    """
    token = create_access_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps every session on the one connection, so the schema
    created here is visible to the app.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=json_serializer,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def image_storage(tmp_path) -> ImageStorage:
    return ImageStorage(upload_dir=str(tmp_path), thumbnail_size=64)


@pytest_asyncio.fixture
async def client(db_session, image_storage) -> AsyncGenerator[AsyncClient, None]:
    """
    ASGI client against the store app, sharing the test session.
    """
    from services.store_service.app.main import app

    async def override_get_db():
        try:
            yield db_session
        except Exception:
            await db_session.rollback()
            raise

    oauth_http = httpx.AsyncClient(transport=httpx.MockTransport(_identity_provider))

    app.dependency_overrides[get_async_db] = override_get_db
    app.dependency_overrides[get_vnpay_client] = lambda: make_vnpay_client()
    app.dependency_overrides[get_oauth_verifier] = lambda: OAuthVerifier(
        http_client=oauth_http
    )
    app.dependency_overrides[get_image_storage] = lambda: image_storage

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    await oauth_http.aclose()
