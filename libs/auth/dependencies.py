from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.auth.security import decode_access_token
from libs.common.errors import AuthenticationError, PermissionDeniedError

security = HTTPBearer(auto_error=False)


def _user_from_credentials(credentials: HTTPAuthorizationCredentials) -> AuthUser:
    payload = decode_access_token(credentials.credentials)
    try:
        return AuthUser(**payload)
    except ValidationError as exc:
        raise AuthenticationError(
            "Could not validate credentials", code="INVALID_TOKEN"
        ) from exc


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> AuthUser:
    """
    Validate the bearer access token and return the authenticated user.
    """
    if credentials is None:
        raise AuthenticationError("Authentication required", code="NO_TOKEN")
    return _user_from_credentials(credentials)


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Optional[AuthUser]:
    """Like ``get_current_user`` but anonymous requests get ``None``."""
    if credentials is None:
        return None
    return _user_from_credentials(credentials)


async def require_staff(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
) -> AuthUser:
    if not current_user.is_staff:
        raise PermissionDeniedError("Staff privileges required", code="INSUFFICIENT_ROLE")
    return current_user


async def require_admin(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
) -> AuthUser:
    if not current_user.is_admin:
        raise PermissionDeniedError("Admin privileges required", code="INSUFFICIENT_ROLE")
    return current_user
