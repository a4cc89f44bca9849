"""ADSYNC - Account Discovery.

Finds every Google Ads account a user's credential can see:
  list accessible → describe each (in parallel) → reconcile → expand a
  manager's children when nothing usable was found → de-duplicate → persist
  → link the first account to the credential

Per-account metadata failures degrade to "Account <id>" placeholders. Only a
failure to obtain a token or to list accounts fails the discovery.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

import httpx
from sqlmodel import Session

from adsync.config import Settings
from adsync.connectors.google.client import GoogleAdsClient
from adsync.connectors.google.endpoints import GoogleAdsEndpoints
from adsync.core.errors import AdsyncError, PartialMetadataFailure, UpstreamError
from adsync.core.logging import get_logger
from adsync.ingestion.token_manager import TokenManager
from adsync.models.account_models import (
    AccountRecord,
    placeholder_name,
    prefer_named,
    sanitize_customer_id,
)
from adsync.models.run_models import DiscoveryResult, MetadataFailureOut
from adsync.storage.credential_store import CredentialStore
from adsync.storage.upsert_sink import IdempotentUpsertSink

logger = get_logger("ingestion.discovery")


def is_usable(record: AccountRecord) -> bool:
    """A non-manager account with a real descriptive name."""
    return not record.is_manager and record.has_real_name


def deduplicate(records: List[AccountRecord]) -> List[AccountRecord]:
    """Collapse records by customer_id, keeping first-seen order."""
    merged: Dict[str, AccountRecord] = {}
    for record in records:
        current = merged.get(record.customer_id)
        merged[record.customer_id] = prefer_named(current, record) if current else record
    return list(merged.values())


class AccountDiscovery:
    def __init__(
        self,
        session: Session,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.transport = transport
        self.store = CredentialStore(session)
        self.sink = IdempotentUpsertSink(session)
        self.tokens = TokenManager(self.store, settings, transport)

    async def _describe(
        self,
        endpoints: GoogleAdsEndpoints,
        customer_id: str,
        manager_id: Optional[str],
        semaphore: asyncio.Semaphore,
    ) -> Tuple[AccountRecord, Optional[PartialMetadataFailure]]:
        async with semaphore:
            try:
                record = await endpoints.get_customer_details(customer_id, manager_id)
                error = None if record else "empty customer result"
            except UpstreamError as e:
                record, error = None, str(e)

        if record is not None:
            return record, None

        logger.warning(
            f"Metadata unavailable for account {customer_id}: {error}",
            extra={"customer_id": customer_id, "login_customer_id": manager_id},
        )
        placeholder = AccountRecord(customer_id=customer_id, name=placeholder_name(customer_id))
        return placeholder, PartialMetadataFailure(customer_id, error)

    async def _expand_children(
        self, endpoints: GoogleAdsEndpoints, manager_id: str
    ) -> List[AccountRecord]:
        try:
            children = await endpoints.list_child_accounts(manager_id)
        except UpstreamError as e:
            logger.warning(
                f"Child expansion under manager {manager_id} failed: {e}",
                extra={"login_customer_id": manager_id},
            )
            return []
        return [child for child in children if not child.is_manager]

    async def discover_accounts(self, user_id: str) -> DiscoveryResult:
        try:
            return await self._discover(user_id)
        except AdsyncError as e:
            logger.error(f"Account discovery failed: {e}", extra={"user_id": user_id})
            return DiscoveryResult(ok=False, error=str(e))

    async def _discover(self, user_id: str) -> DiscoveryResult:
        ctx = await self.tokens.ensure_access_token(user_id)
        manager_id = ctx.login_customer_id
        expanded = False

        async with GoogleAdsClient(ctx.access_token, self.settings, self.transport) as client:
            endpoints = GoogleAdsEndpoints(client)
            customer_ids = await client.list_accessible_customers()

            semaphore = asyncio.Semaphore(max(1, self.settings.discovery_concurrency))
            described = await asyncio.gather(
                *(self._describe(endpoints, cid, manager_id, semaphore) for cid in customer_ids)
            )
            records = [record for record, _ in described]
            failures = [failure for _, failure in described if failure]

            if not any(is_usable(r) for r in records) and self.settings.discovery_expand_children:
                expansion_manager = manager_id or next(
                    (r.customer_id for r in records if r.is_manager), None
                )
                if expansion_manager:
                    logger.info(
                        f"No usable accounts found; expanding children of {expansion_manager}",
                        extra={"user_id": user_id, "login_customer_id": expansion_manager},
                    )
                    records.extend(await self._expand_children(endpoints, expansion_manager))
                    manager_id = expansion_manager
                    expanded = True

        accounts = deduplicate(records)
        linked_id: Optional[str] = None
        if accounts:
            self.sink.upsert_accounts(accounts)
            first = next((a for a in accounts if is_usable(a)), accounts[0])
            linked_id = sanitize_customer_id(first.customer_id)
            self.store.update_linked_account(user_id, linked_id, manager_id)

        logger.info(
            f"Discovered {len(accounts)} accounts ({len(failures)} without metadata)",
            extra={"user_id": user_id, "customer_id": linked_id},
        )
        return DiscoveryResult(
            ok=True,
            accounts=accounts,
            login_customer_id=manager_id,
            linked_customer_id=linked_id,
            expanded_children=expanded,
            metadata_failures=[
                MetadataFailureOut(customer_id=f.customer_id, error=f.error) for f in failures
            ],
        )
