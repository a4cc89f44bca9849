"""ADSYNC - Central Configuration via Pydantic Settings."""

import os
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Google OAuth ──
    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""
    google_oauth_token_url: str = "https://oauth2.googleapis.com/token"

    # ── Google Ads API ──
    google_ads_developer_token: str = ""
    google_ads_api_version: str = "v21"
    google_ads_base_url: str = "https://googleads.googleapis.com"
    default_login_customer_id: Optional[str] = None  # Manager (MCC) used when the credential has none

    # ── Ingestion ──
    allow_fallback_no_mcc: bool = True
    discovery_expand_children: bool = True
    discovery_concurrency: int = 5
    default_lookback_days: int = 7
    token_refresh_skew_seconds: int = 0
    manager_binding_ttl_hours: int = 24  # How long a resolved manager (or none) is trusted
    ingest_api_key: str = ""  # Shared secret for the /sink endpoints

    # ── HTTP ──
    http_timeout_seconds: float = 30.0
    http_max_retries: int = Field(default=3, ge=1)  # Attempts per request, first one included
    http_retry_base_delay: float = 2.0  # seconds

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    ingest_hour: int = 3  # Daily run at 3 AM UTC

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adsync.db"
        return "sqlite:///./adsync.db"

    @property
    def google_ads_api_base(self) -> str:
        return f"{self.google_ads_base_url}/{self.google_ads_api_version}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
