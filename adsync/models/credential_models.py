"""ADSYNC - Delegated Google Credential Model."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GoogleCredential(SQLModel, table=True):
    """OAuth delegation held on behalf of one user.

    A user may have several historical rows; the most recently created one is
    authoritative. Only access_token and token_expiry change after creation
    (plus the linked account / manager ids recorded by discovery).
    """

    __tablename__ = "google_credentials"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, description="Owning user")
    access_token: Optional[str] = Field(default=None)
    refresh_token: str = Field(description="Long-lived refresh token, never rewritten")
    token_expiry: Optional[datetime] = Field(default=None)
    customer_id: Optional[str] = Field(
        default=None, description="Last linked target account (digits only)"
    )
    login_customer_id: Optional[str] = Field(
        default=None, description="Manager (MCC) id sent as login-customer-id"
    )
    created_at: datetime = Field(default_factory=_utcnow, index=True)
    updated_at: datetime = Field(default_factory=_utcnow)
