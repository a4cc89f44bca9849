"""ADSYNC - Ingestion Orchestrator.

Runs one tracked ingestion:
  create run (running) → ensure token → resolve the managing account
  → fetch metrics → upsert metrics → upsert campaigns (best effort)
  → finalize run (completed | failed)

A run transitions out of `running` exactly once. A retry is a new run.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import httpx
from sqlmodel import Session

from adsync.config import Settings
from adsync.connectors.google.client import GoogleAdsClient
from adsync.connectors.google.endpoints import GoogleAdsEndpoints
from adsync.connectors.google.transformer import build_campaign_records
from adsync.core.errors import AdsyncError, HierarchyDeniedError, MissingTargetAccountError
from adsync.core.logging import get_logger
from adsync.ingestion.manager_resolver import ManagerResolver
from adsync.ingestion.token_manager import TokenManager
from adsync.models.account_models import sanitize_customer_id
from adsync.models.run_models import (
    TERMINAL_STATUSES,
    DateRange,
    IngestionResult,
    IngestionRun,
    RunStatus,
)
from adsync.storage.credential_store import CredentialStore
from adsync.storage.upsert_sink import IdempotentUpsertSink

logger = get_logger("ingestion.pipeline")

DATE_FORMAT = "%Y-%m-%d"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD") from None


def resolve_dates(
    start_date: Optional[str],
    end_date: Optional[str],
    lookback_days: int = 7,
    today: Optional[date] = None,
) -> tuple[str, str]:
    """Resolve an inclusive (start, end) range. Defaults: end = today, start = end - lookback."""
    today = today or _utcnow().date()
    end = _parse_date(end_date) or today
    start = _parse_date(start_date) or end - timedelta(days=lookback_days)
    if start > end:
        raise ValueError(f"start_date {start} is after end_date {end}")
    return start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT)


@dataclass
class _RunState:
    login_customer_id: Optional[str] = None
    hierarchy_validated: bool = False
    fallback_used: bool = False
    records_processed: int = 0
    campaigns_processed: int = 0


class IngestionOrchestrator:
    """Coordinates token, hierarchy, fetch and upsert steps for one run."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session = session
        self.settings = settings
        self.transport = transport
        self.clock = clock
        self.store = CredentialStore(session)
        self.sink = IdempotentUpsertSink(session)
        self.tokens = TokenManager(self.store, settings, transport, clock)
        self.managers = ManagerResolver(session, settings, clock)

    def _resolve_target(self, user_id: str, target_account_id: Optional[str]) -> str:
        target = sanitize_customer_id(target_account_id)
        if not target:
            cred = self.store.get_latest_credential(user_id)
            target = sanitize_customer_id(cred.customer_id if cred else None)
        if not target:
            raise MissingTargetAccountError(user_id)
        return target

    async def run(
        self,
        user_id: str,
        target_account_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        allow_fallback: Optional[bool] = None,
    ) -> IngestionResult:
        """Execute one ingestion and return its outcome.

        Raises MissingTargetAccountError or ValueError before any run is
        created; every later failure is recorded on the run and returned as
        ``ok=False``.
        """
        if allow_fallback is None:
            allow_fallback = self.settings.allow_fallback_no_mcc
        target = self._resolve_target(user_id, target_account_id)
        start, end = resolve_dates(
            start_date, end_date, self.settings.default_lookback_days, self.clock().date()
        )

        run = IngestionRun(
            user_id=user_id,
            customer_id=target,
            start_date=start,
            end_date=end,
            status=RunStatus.RUNNING,
        )
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)
        run_id = run.id
        log_extra = {"user_id": user_id, "customer_id": target, "run_id": run_id}
        logger.info(f"Ingestion run started for {start}..{end}", extra=log_extra)

        state = _RunState()
        date_range = DateRange(start_date=start, end_date=end)
        try:
            await self._execute(state, user_id, target, start, end, allow_fallback)
        except Exception as e:
            self.session.rollback()
            if isinstance(e, AdsyncError):
                logger.error(f"Ingestion run failed: {e}", extra=log_extra)
            else:
                logger.exception(f"Ingestion run failed unexpectedly: {e}", extra=log_extra)
            self._finalize(run_id, RunStatus.FAILED, state, error=str(e))
            return IngestionResult(
                ok=False,
                run_id=run_id,
                customer_id=target,
                records_processed=0,
                date_range=date_range,
                hierarchy_validated=state.hierarchy_validated,
                fallback_used=state.fallback_used,
                error=str(e),
            )

        self._finalize(run_id, RunStatus.COMPLETED, state)
        logger.info(
            f"Ingestion run completed: {state.records_processed} records, "
            f"{state.campaigns_processed} campaigns",
            extra=log_extra,
        )
        return IngestionResult(
            ok=True,
            run_id=run_id,
            customer_id=target,
            records_processed=state.records_processed,
            campaigns_processed=state.campaigns_processed,
            date_range=date_range,
            hierarchy_validated=state.hierarchy_validated,
            fallback_used=state.fallback_used,
        )

    async def _execute(
        self,
        state: _RunState,
        user_id: str,
        target: str,
        start: str,
        end: str,
        allow_fallback: bool,
    ) -> None:
        ctx = await self.tokens.ensure_access_token(user_id)
        candidates = self.managers.candidates(user_id, ctx.login_customer_id)

        async with GoogleAdsClient(ctx.access_token, self.settings, self.transport) as client:
            endpoints = GoogleAdsEndpoints(client)

            if candidates:
                resolution = await self.managers.resolve(endpoints, user_id, target, candidates)
                if resolution.ok:
                    state.hierarchy_validated = True
                    state.login_customer_id = resolution.login_customer_id
                elif not allow_fallback:
                    raise HierarchyDeniedError(resolution.reason)
                else:
                    logger.warning(
                        f"Hierarchy denied, querying account directly: {resolution.reason}",
                        extra={"user_id": user_id, "customer_id": target},
                    )
                    state.fallback_used = True

            records = await endpoints.fetch_metrics(target, state.login_customer_id, start, end)

        if not records:
            return

        summary = self.sink.upsert_metrics(records)
        state.records_processed = summary.total

        try:
            campaigns = build_campaign_records(records)
            state.campaigns_processed = self.sink.upsert_campaigns(campaigns).total
        except Exception as e:
            self.session.rollback()
            logger.warning(
                f"Campaign upsert skipped: {e}",
                extra={"user_id": user_id, "customer_id": target},
            )

    def _finalize(
        self,
        run_id: int,
        status: RunStatus,
        state: _RunState,
        error: Optional[str] = None,
    ) -> IngestionRun:
        """The single terminal transition of a run."""
        run = self.session.get(IngestionRun, run_id)
        if run is None:
            raise LookupError(f"Ingestion run {run_id} vanished")
        if run.status in TERMINAL_STATUSES:
            raise RuntimeError(f"Ingestion run {run_id} is already {run.status.value}")

        run.status = status
        run.login_customer_id = state.login_customer_id
        run.hierarchy_validated = state.hierarchy_validated
        run.fallback_used = state.fallback_used
        run.records_processed = state.records_processed
        run.campaigns_processed = state.campaigns_processed
        run.error_message = error
        run.completed_at = self.clock()
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)
        return run
