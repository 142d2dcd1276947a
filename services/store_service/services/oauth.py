"""
Google and Facebook identity verification.

The client completes the provider's sign-in flow and sends us the resulting
token; we confirm it with the provider before trusting any identity claims.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.errors import AuthenticationError, ExternalServiceError
from libs.common.logging import get_logger
from libs.common.retry import RetryExhaustedError, retry_with_backoff

logger = get_logger(__name__)


@dataclass
class OAuthIdentity:
    """Identity confirmed by the provider."""

    provider: str
    provider_id: str
    email: Optional[str]
    full_name: Optional[str]
    avatar_url: Optional[str] = None


class OAuthVerifier:
    """Async verifier for provider tokens."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = get_settings()
        self._client = http_client

    async def _get(self, url: str, params: dict) -> httpx.Response:
        async def call() -> httpx.Response:
            if self._client is not None:
                return await self._client.get(url, params=params)
            async with httpx.AsyncClient(
                timeout=self.settings.HTTP_TIMEOUT_SECONDS
            ) as client:
                return await client.get(url, params=params)

        try:
            return await retry_with_backoff(
                call, max_retries=3, base_delay=0.5, retry_on=(httpx.TransportError,)
            )
        except RetryExhaustedError as exc:
            logger.error("Identity provider unreachable: %s", exc.last_exception)
            raise ExternalServiceError(
                "Identity provider is unavailable", code="OAUTH_PROVIDER_UNAVAILABLE"
            ) from exc

    async def verify_google(self, id_token: str) -> OAuthIdentity:
        response = await self._get(
            self.settings.GOOGLE_TOKENINFO_URL, {"id_token": id_token}
        )
        if response.status_code != 200:
            raise AuthenticationError("Invalid Google token", code="INVALID_OAUTH_TOKEN")
        data = response.json()
        if not data.get("sub"):
            raise AuthenticationError("Invalid Google token", code="INVALID_OAUTH_TOKEN")

        client_id = self.settings.GOOGLE_CLIENT_ID
        if client_id and data.get("aud") != client_id:
            raise AuthenticationError(
                "Google token was issued for another application",
                code="INVALID_OAUTH_TOKEN",
            )
        email_verified = str(data.get("email_verified", "")).lower() == "true"
        return OAuthIdentity(
            provider="google",
            provider_id=data["sub"],
            email=data.get("email") if email_verified else None,
            full_name=data.get("name"),
            avatar_url=data.get("picture"),
        )

    async def verify_facebook(self, access_token: str) -> OAuthIdentity:
        response = await self._get(
            self.settings.FACEBOOK_GRAPH_URL,
            {"fields": "id,name,email,picture", "access_token": access_token},
        )
        if response.status_code != 200:
            raise AuthenticationError(
                "Invalid Facebook token", code="INVALID_OAUTH_TOKEN"
            )
        data = response.json()
        if not data.get("id"):
            raise AuthenticationError(
                "Invalid Facebook token", code="INVALID_OAUTH_TOKEN"
            )
        picture = (data.get("picture") or {}).get("data") or {}
        return OAuthIdentity(
            provider="facebook",
            provider_id=data["id"],
            email=data.get("email"),
            full_name=data.get("name"),
            avatar_url=picture.get("url"),
        )


def get_oauth_verifier() -> OAuthVerifier:
    """FastAPI dependency; tests override it with a mock transport."""
    return OAuthVerifier()
