"""Unit tests for account flows and the loyalty ledger."""

import re
import uuid
from datetime import timedelta

import pytest
from libs.common.datetime_utils import utc_now
from libs.common.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from services.store_service.models import LoyaltyTransaction, LoyaltyTransactionType
from services.store_service.services import auth_ops, loyalty_ops
from sqlalchemy import select
from tests.factories import DEFAULT_PASSWORD, UserFactory


@pytest.fixture
def outbox(monkeypatch):
    """Capture emails sent by auth_ops."""
    sent = []

    async def fake_send(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(auth_ops, "send_email", fake_send)
    return sent


def _token_from(mail) -> str:
    return re.search(r"token=([0-9a-f]+)", mail["body"]).group(1)


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_register_grants_welcome_bonus(db_session, outbox):
    user, tokens = await auth_ops.register(
        db_session,
        email="  New.Customer@CoffeeTea.vn ",
        password=DEFAULT_PASSWORD,
        full_name="New Customer",
    )

    assert user.email == "new.customer@coffeetea.vn"
    assert user.loyalty_points == 100
    assert not user.is_email_verified
    assert tokens["token_type"] == "bearer"
    assert outbox[0]["to"] == "new.customer@coffeetea.vn"

    entry = await db_session.scalar(
        select(LoyaltyTransaction).where(LoyaltyTransaction.user_id == user.id)
    )
    assert entry.transaction_type == LoyaltyTransactionType.WELCOME_BONUS
    assert entry.balance_after == 100
    assert entry.expires_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_register_duplicate_email(db_session, outbox):
    existing = UserFactory.create(email="taken@coffeetea.vn")
    db_session.add(existing)
    await db_session.commit()

    with pytest.raises(ConflictError):
        await auth_ops.register(
            db_session,
            email="TAKEN@coffeetea.vn",
            password=DEFAULT_PASSWORD,
            full_name="Someone",
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_register_weak_password(db_session, outbox):
    with pytest.raises(ValidationError) as exc_info:
        await auth_ops.register(
            db_session, email="weak@coffeetea.vn", password="short", full_name="Weak"
        )

    assert exc_info.value.code == "WEAK_PASSWORD"
    assert exc_info.value.details


@pytest.mark.asyncio
@pytest.mark.unit
async def test_login_success_resets_failures(db_session):
    user = UserFactory.create(failed_login_attempts=3)
    db_session.add(user)
    await db_session.commit()

    logged_in, tokens = await auth_ops.login(
        db_session, email=user.email, password=DEFAULT_PASSWORD
    )

    assert logged_in.failed_login_attempts == 0
    assert logged_in.last_login_at is not None
    assert tokens["access_token"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_account_locks_after_repeated_failures(db_session):
    user = UserFactory.create()
    db_session.add(user)
    await db_session.commit()

    for _ in range(5):
        with pytest.raises(AuthenticationError) as exc_info:
            await auth_ops.login(db_session, email=user.email, password="Wrong#Pass1")
        assert exc_info.value.code == "INVALID_CREDENTIALS"

    with pytest.raises(AuthenticationError) as exc_info:
        await auth_ops.login(db_session, email=user.email, password=DEFAULT_PASSWORD)

    assert exc_info.value.code == "ACCOUNT_LOCKED"
    assert exc_info.value.status_code == 423


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_issues_new_pair(db_session):
    user = UserFactory.create()
    db_session.add(user)
    await db_session.commit()
    tokens = auth_ops.tokens_for(user)

    refreshed = await auth_ops.refresh_tokens(
        db_session, refresh_token=tokens["refresh_token"]
    )

    assert refreshed["access_token"] != tokens["access_token"]


# ---------------------------------------------------------------------------
# Password reset / email verification
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_password_reset_flow(db_session, outbox):
    user = UserFactory.create()
    db_session.add(user)
    await db_session.commit()

    await auth_ops.request_password_reset(db_session, email=user.email)
    token = _token_from(outbox[-1])
    await auth_ops.reset_password(db_session, token=token, new_password="Fresh#Roast77")

    logged_in, _ = await auth_ops.login(
        db_session, email=user.email, password="Fresh#Roast77"
    )
    assert logged_in.id == user.id

    with pytest.raises(ValidationError):
        await auth_ops.reset_password(
            db_session, token=token, new_password="Another#Roast88"
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_password_reset_for_unknown_email_is_silent(db_session, outbox):
    await auth_ops.request_password_reset(db_session, email="ghost@coffeetea.vn")

    assert outbox == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expired_reset_token_rejected(db_session, outbox):
    user = UserFactory.create()
    db_session.add(user)
    await db_session.commit()
    await auth_ops.request_password_reset(db_session, email=user.email)
    user.password_reset_expires_at = utc_now() - timedelta(minutes=1)
    await db_session.commit()

    with pytest.raises(ValidationError) as exc_info:
        await auth_ops.reset_password(
            db_session, token=_token_from(outbox[-1]), new_password="Fresh#Roast77"
        )

    assert exc_info.value.code == "INVALID_RESET_TOKEN"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_verify_email_with_registration_token(db_session, outbox):
    user, _ = await auth_ops.register(
        db_session,
        email="verify@coffeetea.vn",
        password=DEFAULT_PASSWORD,
        full_name="Verify Me",
    )

    verified = await auth_ops.verify_email(db_session, token=_token_from(outbox[0]))

    assert verified.id == user.id
    assert verified.is_email_verified
    with pytest.raises(ValidationError):
        await auth_ops.resend_verification(db_session, user_id=user.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_change_password_requires_current(db_session):
    user = UserFactory.create()
    db_session.add(user)
    await db_session.commit()

    with pytest.raises(AuthenticationError):
        await auth_ops.change_password(
            db_session,
            user_id=user.id,
            current_password="Wrong#Pass1",
            new_password="Fresh#Roast77",
        )
    with pytest.raises(ValidationError) as exc_info:
        await auth_ops.change_password(
            db_session,
            user_id=user.id,
            current_password=DEFAULT_PASSWORD,
            new_password=DEFAULT_PASSWORD,
        )
    assert exc_info.value.code == "SAME_PASSWORD"


# ---------------------------------------------------------------------------
# OAuth accounts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_oauth_links_existing_account_by_email(db_session):
    user = UserFactory.create(email="linked@coffeetea.vn", is_email_verified=False)
    db_session.add(user)
    await db_session.commit()

    linked, _, created = await auth_ops.upsert_oauth_user(
        db_session,
        provider="google",
        provider_id="g-123",
        email="Linked@coffeetea.vn",
        full_name="Linked",
    )

    assert not created
    assert linked.id == user.id
    assert linked.google_id == "g-123"
    assert linked.is_email_verified


@pytest.mark.asyncio
@pytest.mark.unit
async def test_oauth_creates_account_with_bonus(db_session):
    user, _, created = await auth_ops.upsert_oauth_user(
        db_session,
        provider="facebook",
        provider_id="fb-999",
        email="social@coffeetea.vn",
        full_name=None,
    )

    assert created
    assert user.facebook_id == "fb-999"
    assert user.full_name == "social"
    assert user.password_hash is None
    assert user.loyalty_points == 100


@pytest.mark.asyncio
@pytest.mark.unit
async def test_oauth_without_email_cannot_create(db_session):
    with pytest.raises(ValidationError) as exc_info:
        await auth_ops.upsert_oauth_user(
            db_session,
            provider="facebook",
            provider_id="fb-000",
            email=None,
            full_name="Anon",
        )

    assert exc_info.value.code == "OAUTH_EMAIL_REQUIRED"


# ---------------------------------------------------------------------------
# Loyalty ledger
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adjust_points_cannot_go_negative(db_session):
    user = UserFactory.create(loyalty_points=40)
    db_session.add(user)
    await db_session.commit()

    with pytest.raises(ValidationError) as exc_info:
        await loyalty_ops.adjust_points(
            db_session, user_id=user.id, points=-50, reason="Correction"
        )

    assert exc_info.value.code == "INSUFFICIENT_POINTS"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adjust_points_writes_ledger(db_session):
    user = UserFactory.create(loyalty_points=40)
    db_session.add(user)
    await db_session.commit()

    entry = await loyalty_ops.adjust_points(
        db_session, user_id=user.id, points=60, reason="Apology for late delivery"
    )
    _, transactions, total = await loyalty_ops.get_loyalty_summary(
        db_session, user_id=user.id
    )

    assert entry.balance_after == 100
    assert total == 1
    assert transactions[0].description == "Apology for late delivery"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_adjust_unknown_user(db_session):
    with pytest.raises(NotFoundError):
        await loyalty_ops.adjust_points(
            db_session, user_id=uuid.uuid4(), points=10, reason="x"
        )


@pytest.mark.unit
def test_reverse_earned_points_limited_to_balance():
    user = UserFactory.create(loyalty_points=5)

    class _Recorder:
        def __init__(self):
            self.added = []

        def add(self, obj):
            self.added.append(obj)

    db = _Recorder()
    entry = loyalty_ops.reverse_earned_points(
        db, user, points=20, order_id=None, order_number="CT2501010001"
    )

    assert entry.points == -5
    assert user.loyalty_points == 0
    assert db.added == [entry]
