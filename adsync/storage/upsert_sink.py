"""ADSYNC - Idempotent Upsert Sink.

Merge-upserts canonical records into the store. The conflict target for a
metric row is its identity_key, for an account its customer_id and for a
campaign its deterministic record id. Re-submitting a batch is a no-op for
unchanged data and a correction for changed data; it never adds rows.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from adsync.core.logging import get_logger
from adsync.core.metric_registry import VALUE_COLUMNS
from adsync.models.account_models import (
    AccountRecord,
    AdAccount,
    ClientAccountLink,
    is_placeholder_name,
    prefer_named,
    sanitize_customer_id,
)
from adsync.models.metric_models import (
    Campaign,
    CampaignRecord,
    DailyMetric,
    MetricRecord,
)

logger = get_logger("storage.sink")


class UpsertSummary(BaseModel):
    inserted: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated


def _now() -> datetime:
    return datetime.now(timezone.utc)


class IdempotentUpsertSink:
    def __init__(self, session: Session):
        self.session = session

    def _write(self, label: str, apply: Callable[[], UpsertSummary]) -> UpsertSummary:
        """Run a batch write and commit; a lost insert race is retried once as updates."""
        try:
            summary = apply()
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.warning(f"Conflict while upserting {label}; retrying batch")
            summary = apply()
            self.session.commit()
        logger.info(
            f"Upserted {label}: {summary.inserted} inserted, {summary.updated} updated"
        )
        return summary

    def client_links(self, customer_ids: Iterable[str]) -> Dict[str, str]:
        """customer_id -> client_id for every linked account among the given ids."""
        ids = sorted(set(customer_ids))
        if not ids:
            return {}
        links = self.session.exec(
            select(ClientAccountLink).where(col(ClientAccountLink.customer_id).in_(ids))
        ).all()
        return {link.customer_id: link.client_id for link in links}

    # ── Metrics ──

    def upsert_metrics(self, records: List[MetricRecord]) -> UpsertSummary:
        """Upsert daily metric rows keyed on identity_key.

        Within one batch the last record for a key wins. Existing rows get only
        their value columns overwritten, plus a client link if they had none.
        """
        batch: Dict[str, MetricRecord] = {}
        for record in records:
            record = record.model_copy(
                update={"customer_id": sanitize_customer_id(record.customer_id)}
            ).with_rates()
            batch[record.identity_key] = record

        def apply() -> UpsertSummary:
            summary = UpsertSummary()
            links = self.client_links(r.customer_id for r in batch.values())
            for key, record in batch.items():
                client_id = record.client_id or links.get(record.customer_id)
                existing = self.session.exec(
                    select(DailyMetric).where(DailyMetric.identity_key == key)
                ).first()

                if existing:
                    for column in VALUE_COLUMNS:
                        setattr(existing, column, getattr(record, column))
                    if existing.client_id is None and client_id:
                        existing.client_id = client_id
                    existing.updated_at = _now()
                    self.session.add(existing)
                    summary.updated += 1
                else:
                    row = DailyMetric(
                        identity_key=key,
                        date=record.date,
                        customer_id=record.customer_id,
                        campaign_id=record.campaign_id or "none",
                        platform=record.platform,
                        client_id=client_id,
                        **{column: getattr(record, column) for column in VALUE_COLUMNS},
                    )
                    self.session.add(row)
                    summary.inserted += 1
            return summary

        return self._write("metrics", apply)

    # ── Accounts ──

    def upsert_accounts(self, records: List[AccountRecord]) -> UpsertSummary:
        """Upsert accounts keyed on customer_id, never regressing a real name."""
        batch: Dict[str, AccountRecord] = {}
        for record in records:
            record = record.model_copy(
                update={"customer_id": sanitize_customer_id(record.customer_id)}
            )
            current = batch.get(record.customer_id)
            batch[record.customer_id] = prefer_named(current, record) if current else record

        def apply() -> UpsertSummary:
            summary = UpsertSummary()
            for customer_id, record in batch.items():
                existing = self.session.exec(
                    select(AdAccount).where(AdAccount.customer_id == customer_id)
                ).first()

                if existing:
                    if record.has_real_name or is_placeholder_name(
                        existing.account_name, existing.customer_id
                    ):
                        existing.account_name = record.name
                    for field in ("currency_code", "time_zone", "status"):
                        value = getattr(record, field)
                        if value is not None:
                            setattr(existing, field, value)
                    if record.is_manager is not None:
                        existing.is_manager = record.is_manager
                        existing.account_type = record.account_type
                    existing.updated_at = _now()
                    self.session.add(existing)
                    summary.updated += 1
                else:
                    self.session.add(
                        AdAccount(
                            customer_id=customer_id,
                            account_name=record.name,
                            currency_code=record.currency_code,
                            time_zone=record.time_zone,
                            is_manager=bool(record.is_manager),
                            status=record.status,
                            account_type=record.account_type,
                        )
                    )
                    summary.inserted += 1
            return summary

        return self._write("accounts", apply)

    # ── Campaigns ──

    def upsert_campaigns(self, records: List[CampaignRecord]) -> UpsertSummary:
        """Upsert campaigns keyed on their deterministic record id."""
        batch = {r.record_id: r for r in records}

        def apply() -> UpsertSummary:
            summary = UpsertSummary()
            links = self.client_links(
                sanitize_customer_id(r.customer_id) for r in batch.values()
            )
            for record_id, record in batch.items():
                customer_id = sanitize_customer_id(record.customer_id)
                existing = self.session.get(Campaign, record_id)
                if existing:
                    existing.name = record.name
                    existing.status = record.status
                    if record.objective is not None:
                        existing.objective = record.objective
                    if existing.client_id is None:
                        existing.client_id = links.get(customer_id)
                    existing.last_sync = _now()
                    self.session.add(existing)
                    summary.updated += 1
                else:
                    self.session.add(
                        Campaign(
                            id=record_id,
                            external_id=record.external_id,
                            customer_id=customer_id,
                            client_id=links.get(customer_id),
                            platform=record.platform,
                            name=record.name,
                            status=record.status,
                            objective=record.objective,
                        )
                    )
                    summary.inserted += 1
            return summary

        return self._write("campaigns", apply)
