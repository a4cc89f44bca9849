"""ADSYNC - Daily Metric & Campaign Models.

One DailyMetric row per (customer_id, date, campaign_id or "none", platform).
The identity_key derived from that tuple is the upsert conflict target, so
re-ingesting an overlapping range updates values instead of adding rows.
"""

import hashlib
import re
from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import BaseModel, field_validator
from sqlmodel import SQLModel, Field

from adsync.core.metric_registry import compute_derived_rates
from adsync.models.account_models import sanitize_customer_id

NO_CAMPAIGN = "none"
DATE_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")

Platform = Literal["google_ads", "meta_ads"]
CampaignStatus = Literal["ENABLED", "PAUSED", "REMOVED"]


def identity_key(
    customer_id: str, date: str, campaign_id: Optional[str], platform: str
) -> str:
    """Deterministic identity of a metric row."""
    natural = "|".join([platform, customer_id, date, campaign_id or NO_CAMPAIGN])
    return hashlib.sha256(natural.encode("utf-8")).hexdigest()


def campaign_record_id(platform: str, customer_id: str, campaign_id: str) -> str:
    return f"{platform}_{customer_id}_{campaign_id}"


# ─────────────────────────────────────────────
# DATABASE MODELS
# ─────────────────────────────────────────────


class DailyMetric(SQLModel, table=True):
    """Canonical daily performance row."""

    __tablename__ = "daily_metrics"

    id: Optional[int] = Field(default=None, primary_key=True)
    identity_key: str = Field(unique=True, index=True)

    # Dimensions (immutable after insert)
    date: str = Field(index=True, description="YYYY-MM-DD")
    customer_id: str = Field(index=True)
    campaign_id: str = Field(default=NO_CAMPAIGN, index=True)
    platform: str = Field(default="google_ads", index=True)

    # Backfilled once a client mapping appears
    client_id: Optional[str] = Field(default=None, index=True)

    # Values
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    conversions: float = 0.0
    leads: float = 0.0
    revenue: float = 0.0
    cpa: float = 0.0
    ctr: float = 0.0
    conv_rate: float = 0.0
    roas: float = 0.0

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Campaign(SQLModel, table=True):
    """Campaign derived from the rows of an ingestion."""

    __tablename__ = "campaigns"

    id: str = Field(primary_key=True, description="<platform>_<customer>_<campaign>")
    external_id: str = Field(index=True)
    customer_id: str = Field(index=True)
    client_id: Optional[str] = Field(default=None, index=True)
    platform: str = Field(default="google_ads")
    name: str
    status: str = Field(default="ENABLED")
    objective: Optional[str] = Field(default=None)
    last_sync: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS
# ─────────────────────────────────────────────


class MetricRecord(BaseModel):
    """Canonical metric shape produced by the transformer and accepted by the sink."""

    date: str
    customer_id: str
    platform: Platform = "google_ads"
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    campaign_status: CampaignStatus = "ENABLED"
    client_id: Optional[str] = None
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    conversions: float = 0.0
    leads: float = 0.0
    revenue: float = 0.0
    cpa: Optional[float] = None
    ctr: Optional[float] = None
    conv_rate: Optional[float] = None
    roas: Optional[float] = None

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        """Only zero-padded YYYY-MM-DD; the raw string feeds identity_key."""
        if not DATE_PATTERN.match(value):
            raise ValueError(f"date must be YYYY-MM-DD, got {value!r}")
        datetime.strptime(value, "%Y-%m-%d")
        return value

    @property
    def identity_key(self) -> str:
        return identity_key(self.customer_id, self.date, self.campaign_id, self.platform)

    def with_rates(self) -> "MetricRecord":
        """Copy with every derived rate filled in at fixed precision."""
        rates = compute_derived_rates(
            self.impressions,
            self.clicks,
            self.spend,
            self.leads,
            self.revenue,
            supplied={
                "cpa": self.cpa,
                "ctr": self.ctr,
                "conv_rate": self.conv_rate,
                "roas": self.roas,
            },
        )
        return self.model_copy(update=rates)


class CampaignRecord(BaseModel):
    """Campaign shape accepted by the sink."""

    id: Optional[str] = None
    external_id: str
    customer_id: str
    platform: Platform = "google_ads"
    name: str
    status: CampaignStatus = "ENABLED"
    objective: Optional[str] = None

    @property
    def record_id(self) -> str:
        customer_id = sanitize_customer_id(self.customer_id)
        return self.id or campaign_record_id(self.platform, customer_id, self.external_id)
