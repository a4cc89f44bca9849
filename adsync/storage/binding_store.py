"""ADSYNC - Account Binding Store.

One row per (user_id, customer_id) recording which manager account last
proved it manages that account. An empty manager id records that none did.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from adsync.core.logging import get_logger
from adsync.models.account_models import AccountBinding

logger = get_logger("storage.bindings")


class BindingStore:
    def __init__(self, session: Session):
        self.session = session

    def get_binding(self, user_id: str, customer_id: str) -> Optional[AccountBinding]:
        return self.session.exec(
            select(AccountBinding).where(
                AccountBinding.user_id == user_id,
                AccountBinding.customer_id == customer_id,
            )
        ).first()

    def save_binding(
        self,
        user_id: str,
        customer_id: str,
        login_customer_id: Optional[str],
        verified_at: datetime,
    ) -> AccountBinding:
        """Upsert on (user_id, customer_id)."""
        binding = self.get_binding(user_id, customer_id)
        if binding is None:
            binding = AccountBinding(user_id=user_id, customer_id=customer_id)
        binding.resolved_login_customer_id = login_customer_id or ""
        binding.last_verified_at = verified_at
        self.session.add(binding)
        self.session.commit()
        self.session.refresh(binding)
        logger.info(
            f"Bound account {customer_id} to manager {login_customer_id or 'none'}",
            extra={
                "user_id": user_id,
                "customer_id": customer_id,
                "login_customer_id": login_customer_id,
            },
        )
        return binding
