"""Rate limiting for the store API.

Uses slowapi. Storage defaults to in-process memory; point
``RATE_LIMIT_STORAGE_URI`` at Redis when running several workers.
"""

from functools import lru_cache
from typing import Callable

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from libs.common.config import get_settings
from libs.common.error_handler import error_body


def get_client_ip(request: Request) -> str:
    """
    Client IP, honouring X-Forwarded-For when behind a proxy.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request) or "127.0.0.1"


@lru_cache
def get_limiter() -> Limiter:
    settings = get_settings()
    return Limiter(
        key_func=get_client_ip,
        default_limits=["100/minute"],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy="fixed-window",
        enabled=settings.RATE_LIMIT_ENABLED,
    )


limiter = get_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """JSON 429 in the same envelope as every other error."""
    return JSONResponse(
        status_code=429,
        content=error_body(
            f"Rate limit exceeded: {exc.detail}", "RATE_LIMIT_EXCEEDED"
        ),
        headers={"Retry-After": "60"},
    )


def auth_limit(func: Callable) -> Callable:
    """Apply strict rate limit for authentication endpoints (5/minute)."""
    return limiter.limit("5/minute")(func)


def payment_limit(func: Callable) -> Callable:
    """Apply strict rate limit for payment endpoints (3/minute)."""
    return limiter.limit("3/minute")(func)
