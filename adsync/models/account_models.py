"""ADSYNC - Ad Account Models.

AdAccount is unique by customer id. ClientAccountLink maps an account to an
internal client and is owned by the surrounding application; this service
only reads it. AccountBinding caches which manager serves a user's account.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def sanitize_customer_id(customer_id: Optional[str]) -> str:
    """Strip dashes and any other non-digit characters from a customer id."""
    return "".join(ch for ch in str(customer_id or "") if ch.isdigit())


def placeholder_name(customer_id: str) -> str:
    """Generic name used when no descriptive name could be fetched."""
    return f"Account {customer_id}"


def is_placeholder_name(name: Optional[str], customer_id: str) -> bool:
    """True for a missing name or the generic name of this very account."""
    if not name:
        return True
    name = name.strip()
    return name in (placeholder_name(customer_id), placeholder_name(sanitize_customer_id(customer_id)))


# ─────────────────────────────────────────────
# DATABASE MODELS
# ─────────────────────────────────────────────


class AdAccount(SQLModel, table=True):
    """A Google Ads customer account discovered through a credential."""

    __tablename__ = "ad_accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: str = Field(unique=True, index=True, description="Digits only")
    account_name: str = Field(default="")
    currency_code: Optional[str] = Field(default=None)
    time_zone: Optional[str] = Field(default=None)
    is_manager: bool = Field(default=False)
    status: Optional[str] = Field(default=None, description="ENABLED | PAUSED | REMOVED ...")
    account_type: str = Field(default="REGULAR", description="MANAGER | REGULAR")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ClientAccountLink(SQLModel, table=True):
    """Links an ad account to an internal client entity."""

    __tablename__ = "client_account_links"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: str = Field(unique=True, index=True)
    client_id: str = Field(index=True)


class AccountBinding(SQLModel, table=True):
    """Manager resolved for one user's target account; empty when none manages it."""

    __tablename__ = "account_bindings"
    __table_args__ = (UniqueConstraint("user_id", "customer_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    customer_id: str = Field(index=True, description="Digits only")
    resolved_login_customer_id: str = Field(default="", description="Empty means no manager")
    last_verified_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS
# ─────────────────────────────────────────────


class AccountRecord(BaseModel):
    """Canonical account shape produced by discovery and accepted by the sink."""

    customer_id: str
    name: str
    currency_code: Optional[str] = None
    time_zone: Optional[str] = None
    is_manager: Optional[bool] = None  # None when metadata was unavailable
    status: Optional[str] = None

    @property
    def has_real_name(self) -> bool:
        return not is_placeholder_name(self.name, self.customer_id)

    @property
    def account_type(self) -> str:
        return "MANAGER" if self.is_manager else "REGULAR"


def prefer_named(current: AccountRecord, candidate: AccountRecord) -> AccountRecord:
    """Pick between two records for the same id; a real name beats a placeholder."""
    if candidate.has_real_name and not current.has_real_name:
        return candidate
    if current.has_real_name and not candidate.has_real_name:
        return current
    return candidate
