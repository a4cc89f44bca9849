"""ADSYNC - Google OAuth refresh-token grant."""

from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from adsync.config import Settings
from adsync.core.errors import RefreshError, TransientError, UpstreamError
from adsync.core.logging import get_logger

logger = get_logger("google.oauth")


class TokenResponse(BaseModel):
    access_token: str
    expires_in: int = 3600
    token_type: Optional[str] = None
    scope: Optional[str] = None


async def refresh_access_token(
    settings: Settings,
    refresh_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TokenResponse:
    """Exchange a refresh token for a new short-lived access token."""
    if not settings.google_oauth_client_id or not settings.google_oauth_client_secret:
        raise RefreshError("Google OAuth client id/secret are not configured")

    async with httpx.AsyncClient(
        timeout=settings.http_timeout_seconds, transport=transport
    ) as client:
        try:
            response = await client.post(
                settings.google_oauth_token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": settings.google_oauth_client_id,
                    "client_secret": settings.google_oauth_client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            raise TransientError(f"Token refresh request failed: {e!r}") from e

    if not response.is_success:
        logger.error(
            f"Token refresh failed: {response.status_code}",
            extra={"status_code": response.status_code},
        )
        raise RefreshError(
            f"Token refresh rejected ({response.status_code}): {response.text}",
            response.status_code,
            response.text,
        )

    try:
        return TokenResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise UpstreamError(
            f"Unexpected token refresh payload: {e}", response.status_code, response.text
        ) from e
