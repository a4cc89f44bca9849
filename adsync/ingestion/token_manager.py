"""ADSYNC - Token Manager.

Hands out a usable Google access token for a user, refreshing it through the
OAuth refresh-token grant when the stored one has reached its expiry.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from adsync.config import Settings
from adsync.connectors.google.oauth import refresh_access_token
from adsync.core.errors import NoCredentialError
from adsync.core.logging import get_logger
from adsync.models.account_models import sanitize_customer_id
from adsync.models.credential_models import GoogleCredential
from adsync.storage.credential_store import CredentialStore

logger = get_logger("ingestion.tokens")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_aware(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC). SQLite returns naive datetimes."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class AccessContext:
    """A usable access token plus the manager id to scope calls under."""

    access_token: str
    login_customer_id: Optional[str]
    credential: GoogleCredential
    refreshed: bool = False


class TokenManager:
    def __init__(
        self,
        store: CredentialStore,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.settings = settings
        self.transport = transport
        self.clock = clock

    def needs_refresh(self, cred: GoogleCredential, now: datetime) -> bool:
        """Expired when now >= expiry - skew. The expiry instant itself counts as expired."""
        if not cred.access_token or cred.token_expiry is None:
            return True
        skew = timedelta(seconds=self.settings.token_refresh_skew_seconds)
        return now >= make_aware(cred.token_expiry) - skew

    def resolve_manager(self, cred: GoogleCredential) -> Optional[str]:
        """Credential's own manager id, else the configured default."""
        manager = sanitize_customer_id(
            cred.login_customer_id or self.settings.default_login_customer_id
        )
        return manager or None

    async def ensure_access_token(self, user_id: str) -> AccessContext:
        cred = self.store.get_latest_credential(user_id)
        if cred is None:
            raise NoCredentialError(user_id)

        now = self.clock()
        if not self.needs_refresh(cred, now):
            return AccessContext(cred.access_token, self.resolve_manager(cred), cred)

        logger.info("Access token expired, refreshing", extra={"user_id": user_id})
        token = await refresh_access_token(self.settings, cred.refresh_token, self.transport)
        expiry = now + timedelta(seconds=token.expires_in)
        cred = self.store.update_access_token(user_id, token.access_token, expiry)
        return AccessContext(
            token.access_token, self.resolve_manager(cred), cred, refreshed=True
        )
