"""ADSYNC - Manager Resolution.

Finds which of a user's manager accounts manages a target account by
validating each candidate in turn. The outcome, including "none of them", is
remembered per (user, account) for MANAGER_BINDING_TTL_HOURS.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from adsync.config import Settings
from adsync.connectors.google.endpoints import GoogleAdsEndpoints
from adsync.core.logging import get_logger
from adsync.ingestion.hierarchy import HierarchyValidator
from adsync.ingestion.token_manager import make_aware
from adsync.models.account_models import AccountBinding, sanitize_customer_id
from adsync.storage.binding_store import BindingStore
from adsync.storage.credential_store import CredentialStore

logger = get_logger("ingestion.managers")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ManagerResolution:
    login_customer_id: Optional[str]
    candidates: List[str] = field(default_factory=list)
    cached: bool = False
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.login_customer_id is not None


class ManagerResolver:
    def __init__(
        self,
        session: Session,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session = session
        self.settings = settings
        self.clock = clock
        self.credentials = CredentialStore(session)
        self.bindings = BindingStore(session)

    def candidates(self, user_id: str, preferred: Optional[str] = None) -> List[str]:
        """Preferred manager first, then every credential's, then the configured default."""
        ordered = [
            preferred,
            *self.credentials.list_manager_ids(user_id),
            self.settings.default_login_customer_id,
        ]
        managers: List[str] = []
        for manager in ordered:
            manager = sanitize_customer_id(manager)
            if manager and manager not in managers:
                managers.append(manager)
        return managers

    def _fresh_binding(
        self, user_id: str, customer_id: str, now: datetime
    ) -> Optional[AccountBinding]:
        binding = self.bindings.get_binding(user_id, customer_id)
        if binding is None:
            return None
        ttl = timedelta(hours=self.settings.manager_binding_ttl_hours)
        if now - make_aware(binding.last_verified_at) >= ttl:
            return None
        return binding

    def _remember(
        self, user_id: str, customer_id: str, manager_id: Optional[str], now: datetime
    ) -> None:
        try:
            self.bindings.save_binding(user_id, customer_id, manager_id, now)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(
                f"Could not cache manager for account {customer_id}: {e}",
                extra={"user_id": user_id, "customer_id": customer_id},
            )

    async def resolve(
        self,
        endpoints: GoogleAdsEndpoints,
        user_id: str,
        target_customer_id: str,
        candidates: List[str],
    ) -> ManagerResolution:
        """Return the first candidate that manages the target, or a denial.

        Transient upstream failures propagate and leave the cache untouched.
        """
        target = sanitize_customer_id(target_customer_id)
        now = self.clock()
        log_extra = {"user_id": user_id, "customer_id": target}

        binding = self._fresh_binding(user_id, target, now)
        if binding is not None:
            manager_id = binding.resolved_login_customer_id or None
            logger.info(f"Using cached manager {manager_id or 'none'}", extra=log_extra)
            reason = None
            if manager_id is None:
                reason = (
                    f"No manager among {', '.join(candidates) or 'none'} manages account "
                    f"{target} (cached)"
                )
            return ManagerResolution(manager_id, candidates, cached=True, reason=reason)

        validator = HierarchyValidator(endpoints)
        reasons: List[str] = []
        for manager_id in candidates:
            verdict = await validator.validate(manager_id, target)
            if verdict.ok:
                self._remember(user_id, target, manager_id, now)
                return ManagerResolution(manager_id, candidates)
            reasons.append(verdict.reason)

        self._remember(user_id, target, None, now)
        return ManagerResolution(None, candidates, reason="; ".join(reasons))
