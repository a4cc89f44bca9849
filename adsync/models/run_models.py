"""ADSYNC - Ingestion Run Models.

An IngestionRun is created in RUNNING state and transitions exactly once to
COMPLETED or FAILED. Runs are never deleted or resumed; a retry is a new run.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, Field

from adsync.models.account_models import AccountRecord


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {RunStatus.COMPLETED, RunStatus.FAILED}


# ─────────────────────────────────────────────
# DATABASE MODEL - Audit trail of orchestrated runs
# ─────────────────────────────────────────────


class IngestionRun(SQLModel, table=True):
    """One orchestrated fetch → transform → store execution."""

    __tablename__ = "ingestion_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    customer_id: str = Field(index=True, description="Target account")
    start_date: str = Field(description="YYYY-MM-DD, inclusive")
    end_date: str = Field(description="YYYY-MM-DD, inclusive")
    status: RunStatus = Field(default=RunStatus.RUNNING, index=True)
    login_customer_id: Optional[str] = Field(default=None)
    hierarchy_validated: bool = Field(default=False)
    fallback_used: bool = Field(default=False)
    records_processed: int = Field(default=0)
    campaigns_processed: int = Field(default=0)
    error_message: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = Field(default=None)


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS
# ─────────────────────────────────────────────


class DateRange(BaseModel):
    start_date: str
    end_date: str


class IngestionResult(BaseModel):
    """What the orchestrator returns to its caller."""

    ok: bool
    run_id: Optional[int] = None
    customer_id: Optional[str] = None
    records_processed: int = 0
    campaigns_processed: int = 0
    date_range: Optional[DateRange] = None
    hierarchy_validated: bool = False
    fallback_used: bool = False
    error: Optional[str] = None


class MetadataFailureOut(BaseModel):
    customer_id: str
    error: str


class DiscoveryResult(BaseModel):
    """What account discovery returns to its caller."""

    ok: bool = True
    accounts: List[AccountRecord] = []
    login_customer_id: Optional[str] = None
    linked_customer_id: Optional[str] = None
    expanded_children: bool = False
    metadata_failures: List[MetadataFailureOut] = []
    error: Optional[str] = None
