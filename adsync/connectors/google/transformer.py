"""ADSYNC - Google Ads Row → Canonical Transformer.

Converts GAQL result rows into MetricRecord, AccountRecord and CampaignRecord
shapes. Rows are parsed through typed models first; a shape mismatch is an
UpstreamError rather than a silently skipped field.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from adsync.core.errors import UpstreamError
from adsync.core.logging import get_logger
from adsync.core.metric_registry import MICROS_PER_UNIT
from adsync.models.account_models import (
    AccountRecord,
    placeholder_name,
    sanitize_customer_id,
)
from adsync.models.metric_models import CampaignRecord, MetricRecord

logger = get_logger("google.transformer")

CAMPAIGN_STATUSES = {"ENABLED", "PAUSED", "REMOVED"}


# ── Typed Row Shapes ──


class _GoogleShape(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class SegmentsRow(_GoogleShape):
    date: Optional[str] = None


class CampaignRow(_GoogleShape):
    id: Optional[int] = None
    name: Optional[str] = None
    status: Optional[str] = None


class MetricsRow(_GoogleShape):
    impressions: int = 0
    clicks: int = 0
    cost_micros: int = 0
    conversions: float = 0.0
    conversions_value: float = 0.0


class CustomerRow(_GoogleShape):
    id: Optional[int] = None
    descriptive_name: Optional[str] = None
    currency_code: Optional[str] = None
    time_zone: Optional[str] = None
    manager: Optional[bool] = None
    status: Optional[str] = None


class CustomerClientRow(CustomerRow):
    level: Optional[int] = None
    client_customer: Optional[str] = None


class GoogleAdsRow(_GoogleShape):
    segments: SegmentsRow = Field(default_factory=SegmentsRow)
    campaign: Optional[CampaignRow] = None
    metrics: MetricsRow = Field(default_factory=MetricsRow)
    customer: Optional[CustomerRow] = None
    customer_client: Optional[CustomerClientRow] = None


def parse_rows(rows: List[Dict[str, Any]]) -> List[GoogleAdsRow]:
    try:
        return [GoogleAdsRow.model_validate(row) for row in rows]
    except ValidationError as e:
        raise UpstreamError(f"Unexpected Google Ads row shape: {e}") from e


def micros_to_currency(micros: int) -> float:
    return float(Decimal(micros) / Decimal(MICROS_PER_UNIT))


def _campaign_status(status: Optional[str]) -> str:
    return status if status in CAMPAIGN_STATUSES else "ENABLED"


# ── Metrics ──


def rows_to_metrics(
    rows: List[Dict[str, Any]], customer_id: str
) -> List[MetricRecord]:
    """Transform campaign-performance rows into MetricRecords with derived rates."""
    customer_id = sanitize_customer_id(customer_id)
    records: List[MetricRecord] = []

    for row in parse_rows(rows):
        if not row.segments.date:
            raise UpstreamError("Metric row is missing segments.date")
        campaign = row.campaign or CampaignRow()
        conversions = row.metrics.conversions

        record = MetricRecord(
            date=row.segments.date,
            customer_id=customer_id,
            platform="google_ads",
            campaign_id=str(campaign.id) if campaign.id is not None else None,
            campaign_name=campaign.name,
            campaign_status=_campaign_status(campaign.status),
            impressions=row.metrics.impressions,
            clicks=row.metrics.clicks,
            spend=micros_to_currency(row.metrics.cost_micros),
            conversions=conversions,
            leads=conversions,
            revenue=row.metrics.conversions_value,
        )
        records.append(record.with_rates())

    logger.info(
        f"Transformed {len(records)} metric rows",
        extra={"customer_id": customer_id},
    )
    return records


def build_campaign_records(metrics: List[MetricRecord]) -> List[CampaignRecord]:
    """One record per distinct campaign id; the first row seen wins."""
    campaigns: Dict[str, CampaignRecord] = {}
    for m in metrics:
        if not m.campaign_id or m.campaign_id in campaigns:
            continue
        campaigns[m.campaign_id] = CampaignRecord(
            external_id=m.campaign_id,
            customer_id=m.customer_id,
            platform=m.platform,
            name=m.campaign_name or f"Campaign {m.campaign_id}",
            status=m.campaign_status,
        )
    return list(campaigns.values())


# ── Accounts ──


def _to_account(shape: CustomerRow, fallback_id: str) -> AccountRecord:
    customer_id = sanitize_customer_id(shape.id) or sanitize_customer_id(fallback_id)
    return AccountRecord(
        customer_id=customer_id,
        name=(shape.descriptive_name or "").strip() or placeholder_name(customer_id),
        currency_code=shape.currency_code,
        time_zone=shape.time_zone,
        is_manager=shape.manager,
        status=shape.status,
    )


def customer_rows_to_account(
    rows: List[Dict[str, Any]], customer_id: str
) -> Optional[AccountRecord]:
    """First `customer` row as an AccountRecord, or None when the result is empty."""
    for row in parse_rows(rows):
        if row.customer is not None:
            return _to_account(row.customer, customer_id)
    return None


def child_rows_to_accounts(rows: List[Dict[str, Any]]) -> List[AccountRecord]:
    """`customer_client` rows as AccountRecords."""
    accounts: List[AccountRecord] = []
    for row in parse_rows(rows):
        child = row.customer_client
        if child is None:
            continue
        fallback = (child.client_customer or "").split("/")[-1]
        account = _to_account(child, fallback)
        if account.customer_id:
            accounts.append(account)
    return accounts
