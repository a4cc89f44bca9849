"""ADSYNC - Shared route dependencies."""

from typing import Optional

import httpx
from fastapi import Depends, Header, HTTPException

from adsync.config import Settings, settings


def get_settings() -> Settings:
    return settings


def get_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Outbound HTTP transport; None uses the network. Overridden in tests."""
    return None


def require_api_key(
    x_api_key: Optional[str] = Header(None),
    config: Settings = Depends(get_settings),
) -> None:
    """Shared-secret check for the sink endpoints."""
    if not config.ingest_api_key or x_api_key != config.ingest_api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
