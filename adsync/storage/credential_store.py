"""ADSYNC - Credential Store.

Narrow read/update interface over the google_credentials table. The most
recently created row for a user is the authoritative credential.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Session, col, select

from adsync.core.logging import get_logger
from adsync.models.account_models import sanitize_customer_id
from adsync.models.credential_models import GoogleCredential

logger = get_logger("storage.credentials")


class CredentialStore:
    def __init__(self, session: Session):
        self.session = session

    def get_latest_credential(self, user_id: str) -> Optional[GoogleCredential]:
        return self.session.exec(
            select(GoogleCredential)
            .where(GoogleCredential.user_id == user_id)
            .order_by(col(GoogleCredential.created_at).desc(), col(GoogleCredential.id).desc())
        ).first()

    def list_manager_ids(self, user_id: str) -> List[str]:
        """Distinct manager ids across every credential of the user, newest first."""
        rows = self.session.exec(
            select(GoogleCredential)
            .where(GoogleCredential.user_id == user_id)
            .order_by(col(GoogleCredential.created_at).desc(), col(GoogleCredential.id).desc())
        ).all()
        managers: List[str] = []
        for cred in rows:
            manager = sanitize_customer_id(cred.login_customer_id)
            if manager and manager not in managers:
                managers.append(manager)
        return managers

    def update_access_token(
        self, user_id: str, access_token: str, expiry: datetime
    ) -> GoogleCredential:
        """Persist a refreshed access token. The refresh token is left untouched."""
        cred = self.get_latest_credential(user_id)
        if cred is None:
            raise LookupError(f"No credential for user {user_id}")
        cred.access_token = access_token
        cred.token_expiry = expiry
        cred.updated_at = datetime.now(timezone.utc)
        self.session.add(cred)
        self.session.commit()
        self.session.refresh(cred)
        logger.info("Access token refreshed and stored", extra={"user_id": user_id})
        return cred

    def update_linked_account(
        self, user_id: str, customer_id: str, login_customer_id: Optional[str]
    ) -> GoogleCredential:
        """Record the discovered target account and manager against the credential."""
        cred = self.get_latest_credential(user_id)
        if cred is None:
            raise LookupError(f"No credential for user {user_id}")
        cred.customer_id = customer_id
        if login_customer_id:
            cred.login_customer_id = login_customer_id
        cred.updated_at = datetime.now(timezone.utc)
        self.session.add(cred)
        self.session.commit()
        self.session.refresh(cred)
        logger.info(
            f"Linked account {customer_id} to credential",
            extra={"user_id": user_id, "customer_id": customer_id},
        )
        return cred

    def list_linked_credentials(self) -> List[GoogleCredential]:
        """Latest credential per user, restricted to users with a linked account."""
        rows = self.session.exec(
            select(GoogleCredential).order_by(
                col(GoogleCredential.created_at).desc(), col(GoogleCredential.id).desc()
            )
        ).all()
        latest: dict[str, GoogleCredential] = {}
        for cred in rows:
            latest.setdefault(cred.user_id, cred)
        return [c for c in latest.values() if c.customer_id]
