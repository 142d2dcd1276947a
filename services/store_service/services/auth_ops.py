"""Account operations: registration, login, tokens, password and email flows."""

import uuid
from datetime import timedelta
from typing import Optional, Tuple

from libs.auth.security import (
    create_token_pair,
    decode_refresh_token,
    generate_one_time_token,
    hash_one_time_token,
    hash_password,
    password_strength_errors,
    verify_password,
)
from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.email import send_email
from libs.common.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from libs.common.logging import get_logger
from services.store_service.models import User
from services.store_service.services import loyalty_ops
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def tokens_for(user: User) -> dict:
    return create_token_pair(user.id, user.email, user.role.value)


def _check_strength(password: str) -> None:
    errors = password_strength_errors(password)
    if errors:
        raise ValidationError(
            "Password does not meet requirements", code="WEAK_PASSWORD", details=errors
        )


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    return await db.scalar(select(User).where(User.email == normalize_email(email)))


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return user


def _issue_verification_token(user: User) -> str:
    settings = get_settings()
    token = generate_one_time_token()
    user.email_verification_token_hash = hash_one_time_token(token)
    user.email_verification_expires_at = utc_now() + timedelta(
        hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
    )
    return token


async def _send_verification_email(user: User, token: str) -> None:
    settings = get_settings()
    link = f"{settings.CLIENT_URL.rstrip('/')}/verify-email?token={token}"
    await send_email(
        user.email,
        f"Verify your {settings.APP_NAME} account",
        f"Hi {user.full_name},\n\nConfirm your email address: {link}\n\n"
        f"The link expires in {settings.EMAIL_VERIFICATION_EXPIRE_HOURS} hours.",
    )


# ============================================================================
# REGISTRATION / LOGIN
# ============================================================================


async def register(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str,
    phone: Optional[str] = None,
) -> Tuple[User, dict]:
    email = normalize_email(email)
    if await get_user_by_email(db, email):
        raise ConflictError(
            "An account with this email already exists", code="EMAIL_EXISTS"
        )
    _check_strength(password)

    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        phone=phone,
        loyalty_points=0,
    )
    token = _issue_verification_token(user)
    db.add(user)
    await db.flush()
    loyalty_ops.grant_welcome_bonus(db, user)
    await db.commit()
    await db.refresh(user)

    await _send_verification_email(user, token)
    logger.info("Registered user %s", user.id)
    return user, tokens_for(user)


async def login(db: AsyncSession, *, email: str, password: str) -> Tuple[User, dict]:
    settings = get_settings()
    invalid = AuthenticationError(
        "Invalid email or password", code="INVALID_CREDENTIALS"
    )
    user = await get_user_by_email(db, email)
    if not user or not user.is_active:
        raise invalid

    now = utc_now()
    locked_until = ensure_utc(user.locked_until)
    if locked_until and locked_until > now:
        minutes = int((locked_until - now).total_seconds() // 60) + 1
        raise AuthenticationError(
            f"Account is locked. Try again in {minutes} minutes",
            code="ACCOUNT_LOCKED",
            status_code=423,
        )

    if not verify_password(password, user.password_hash):
        user.failed_login_attempts += 1
        if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.locked_until = now + timedelta(minutes=settings.ACCOUNT_LOCK_MINUTES)
            user.failed_login_attempts = 0
            logger.warning("Locked account %s after repeated failures", user.id)
        await db.commit()
        raise invalid

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    await db.commit()
    await db.refresh(user)
    return user, tokens_for(user)


async def refresh_tokens(db: AsyncSession, *, refresh_token: str) -> dict:
    payload = decode_refresh_token(refresh_token)
    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError as exc:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN") from exc
    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")
    return tokens_for(user)


# ============================================================================
# PASSWORDS
# ============================================================================


async def request_password_reset(db: AsyncSession, *, email: str) -> None:
    """Same outcome whether or not the account exists."""
    settings = get_settings()
    user = await get_user_by_email(db, email)
    if not user or not user.is_active:
        logger.info("Password reset requested for unknown email")
        return

    token = generate_one_time_token()
    user.password_reset_token_hash = hash_one_time_token(token)
    user.password_reset_expires_at = utc_now() + timedelta(
        minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES
    )
    await db.commit()

    link = f"{settings.CLIENT_URL.rstrip('/')}/reset-password?token={token}"
    await send_email(
        user.email,
        f"Reset your {settings.APP_NAME} password",
        f"Hi {user.full_name},\n\nReset your password: {link}\n\n"
        f"The link expires in {settings.PASSWORD_RESET_EXPIRE_MINUTES} minutes. "
        "If you did not ask for this, ignore this email.",
    )


async def reset_password(db: AsyncSession, *, token: str, new_password: str) -> None:
    user = await db.scalar(
        select(User).where(User.password_reset_token_hash == hash_one_time_token(token))
    )
    expires_at = ensure_utc(user.password_reset_expires_at) if user else None
    if not user or not expires_at or expires_at < utc_now():
        raise ValidationError(
            "Reset link is invalid or has expired", code="INVALID_RESET_TOKEN"
        )
    _check_strength(new_password)

    user.password_hash = hash_password(new_password)
    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    user.failed_login_attempts = 0
    user.locked_until = None
    await db.commit()
    logger.info("Password reset for user %s", user.id)


async def change_password(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    current_password: str,
    new_password: str,
) -> None:
    user = await get_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError(
            "Current password is incorrect", code="INVALID_CURRENT_PASSWORD"
        )
    if current_password == new_password:
        raise ValidationError(
            "New password must differ from the current one", code="SAME_PASSWORD"
        )
    _check_strength(new_password)
    user.password_hash = hash_password(new_password)
    await db.commit()


# ============================================================================
# EMAIL VERIFICATION
# ============================================================================


async def verify_email(db: AsyncSession, *, token: str) -> User:
    user = await db.scalar(
        select(User).where(
            User.email_verification_token_hash == hash_one_time_token(token)
        )
    )
    expires_at = ensure_utc(user.email_verification_expires_at) if user else None
    if not user or not expires_at or expires_at < utc_now():
        raise ValidationError(
            "Verification link is invalid or has expired",
            code="INVALID_VERIFICATION_TOKEN",
        )
    user.is_email_verified = True
    user.email_verification_token_hash = None
    user.email_verification_expires_at = None
    await db.commit()
    await db.refresh(user)
    return user


async def resend_verification(db: AsyncSession, *, user_id: uuid.UUID) -> None:
    user = await get_user(db, user_id)
    if user.is_email_verified:
        raise ValidationError("Email is already verified", code="ALREADY_VERIFIED")
    token = _issue_verification_token(user)
    await db.commit()
    await _send_verification_email(user, token)


# ============================================================================
# PROFILE
# ============================================================================


async def update_profile(db: AsyncSession, *, user_id: uuid.UUID, data: dict) -> User:
    user = await get_user(db, user_id)
    for field, value in data.items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


# ============================================================================
# OAUTH
# ============================================================================


async def upsert_oauth_user(
    db: AsyncSession,
    *,
    provider: str,
    provider_id: str,
    email: Optional[str],
    full_name: Optional[str],
    avatar_url: Optional[str] = None,
) -> Tuple[User, dict, bool]:
    """Find by provider id, then by email (linking), else create.

    Returns ``(user, tokens, created)``.
    """
    id_column = {"google": User.google_id, "facebook": User.facebook_id}[provider]
    user = await db.scalar(select(User).where(id_column == provider_id))
    created = False

    if not user and email:
        user = await get_user_by_email(db, email)
        if user:
            setattr(user, id_column.key, provider_id)
            user.is_email_verified = True
            logger.info("Linked %s account to user %s", provider, user.id)

    if not user:
        if not email:
            raise ValidationError(
                f"{provider.title()} account has no email address",
                code="OAUTH_EMAIL_REQUIRED",
            )
        user = User(
            id=uuid.uuid4(),
            email=normalize_email(email),
            full_name=full_name or normalize_email(email).split("@")[0],
            avatar_url=avatar_url,
            is_email_verified=True,
            loyalty_points=0,
        )
        setattr(user, id_column.key, provider_id)
        db.add(user)
        await db.flush()
        loyalty_ops.grant_welcome_bonus(db, user)
        created = True
        logger.info("Created user %s from %s sign-in", user.id, provider)

    if not user.is_active:
        raise AuthenticationError("Account is disabled", code="ACCOUNT_DISABLED")

    user.last_login_at = utc_now()
    await db.commit()
    await db.refresh(user)
    return user, tokens_for(user), created
