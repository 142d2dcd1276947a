"""Password hashing and JWT issuance/verification."""

import hashlib
import re
import secrets
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

import bcrypt
from jose import JWTError, jwt

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.errors import AuthenticationError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# bcrypt only looks at the first 72 bytes of the password.
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8
COMMON_PASSWORD_FRAGMENTS = ("password", "123456", "qwerty", "admin", "letmein")


# ============================================================================
# PASSWORDS
# ============================================================================


def hash_password(password: str) -> str:
    settings = get_settings()
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def password_strength_errors(password: str) -> List[str]:
    """Empty list when the password is acceptable."""
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", password):
        errors.append("Password must contain at least one special character")
    lowered = password.lower()
    if any(fragment in lowered for fragment in COMMON_PASSWORD_FRAGMENTS):
        errors.append("Password must not contain common words or sequences")
    return errors


# ============================================================================
# ONE-TIME TOKENS (email verification, password reset)
# ============================================================================


def generate_one_time_token() -> str:
    return secrets.token_hex(32)


def hash_one_time_token(token: str) -> str:
    """Only the digest is stored, so a leaked table cannot be replayed."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ============================================================================
# JWT
# ============================================================================


def _encode(claims: Dict[str, Any], secret: str, lifetime: timedelta) -> str:
    settings = get_settings()
    now = utc_now()
    payload = {
        **claims,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: uuid.UUID, email: str, role: str) -> str:
    settings = get_settings()
    return _encode(
        {"sub": str(user_id), "email": email, "role": role, "type": ACCESS_TOKEN_TYPE},
        settings.JWT_SECRET,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: uuid.UUID) -> str:
    settings = get_settings()
    return _encode(
        {"sub": str(user_id), "type": REFRESH_TOKEN_TYPE},
        settings.JWT_REFRESH_SECRET,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def create_token_pair(user_id: uuid.UUID, email: str, role: str) -> Dict[str, Any]:
    settings = get_settings()
    return {
        "access_token": create_access_token(user_id, email, role),
        "refresh_token": create_refresh_token(user_id),
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError as exc:
        raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN") from exc
    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid token type", code="INVALID_TOKEN")
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    return _decode(token, get_settings().JWT_SECRET, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _decode(token, get_settings().JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE)
