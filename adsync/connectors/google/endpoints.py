"""ADSYNC - Google Ads API Endpoints.

GAQL queries for each resource the pipeline reads. Each fetch returns
canonical records built by the transformer.
"""

from typing import Any, Dict, List, Optional

from adsync.connectors.google.client import GoogleAdsClient
from adsync.connectors.google.transformer import (
    child_rows_to_accounts,
    customer_rows_to_account,
    rows_to_metrics,
)
from adsync.core.errors import AccessDeniedError, UpstreamError
from adsync.core.logging import get_logger
from adsync.models.account_models import AccountRecord, sanitize_customer_id
from adsync.models.metric_models import MetricRecord

logger = get_logger("google.endpoints")

# Error markers Google puts in the body of a permission failure
PERMISSION_MARKERS = ("PERMISSION_DENIED", "USER_PERMISSION_DENIED", "DEVELOPER_TOKEN_NOT_APPROVED")

CUSTOMER_FIELDS = (
    "customer.id, customer.descriptive_name, customer.currency_code, "
    "customer.time_zone, customer.manager, customer.status"
)
CLIENT_FIELDS = (
    "customer_client.id, customer_client.descriptive_name, "
    "customer_client.currency_code, customer_client.time_zone, "
    "customer_client.manager, customer_client.status, customer_client.level, "
    "customer_client.client_customer"
)


def build_metrics_query(start_date: str, end_date: str) -> str:
    """Campaign performance per day over an inclusive range, newest first."""
    return (
        "SELECT segments.date, campaign.id, campaign.name, campaign.status, "
        "metrics.impressions, metrics.clicks, metrics.cost_micros, "
        "metrics.conversions, metrics.conversions_value "
        "FROM campaign "
        f"WHERE segments.date BETWEEN '{start_date}' AND '{end_date}' "
        "ORDER BY segments.date DESC"
    )


def build_customer_query() -> str:
    return f"SELECT {CUSTOMER_FIELDS} FROM customer LIMIT 1"


def build_children_query() -> str:
    return f"SELECT {CLIENT_FIELDS} FROM customer_client WHERE customer_client.level = 1"


def build_hierarchy_query(target_customer_id: str) -> str:
    return (
        f"SELECT {CLIENT_FIELDS} FROM customer_client "
        f"WHERE customer_client.id = {sanitize_customer_id(target_customer_id)}"
    )


def is_permission_denial(error: UpstreamError) -> bool:
    return error.status_code == 403 and any(m in (error.body or "") for m in PERMISSION_MARKERS)


class GoogleAdsEndpoints:
    """Fetch canonical records from Google Ads."""

    def __init__(self, client: GoogleAdsClient):
        self.client = client

    # ── Metrics ──

    async def fetch_metrics(
        self,
        customer_id: str,
        login_customer_id: Optional[str],
        start_date: str,
        end_date: str,
    ) -> List[MetricRecord]:
        """Fetch daily campaign metrics for one account.

        The login-customer-id header is sent only when a manager is given.
        A 403 permission body becomes AccessDeniedError naming both ids.
        """
        customer_id = sanitize_customer_id(customer_id)
        query = build_metrics_query(start_date, end_date)
        try:
            rows = await self.client.search_stream(customer_id, query, login_customer_id)
        except UpstreamError as e:
            if is_permission_denial(e):
                raise AccessDeniedError(
                    customer_id,
                    sanitize_customer_id(login_customer_id) or None,
                    e.status_code,
                    e.body,
                ) from e
            raise

        records = rows_to_metrics(rows, customer_id)
        logger.info(
            f"Fetched {len(records)} metric records for {start_date}..{end_date}",
            extra={"customer_id": customer_id, "login_customer_id": login_customer_id},
        )
        return records

    # ── Accounts ──

    async def get_customer_details(
        self, customer_id: str, login_customer_id: Optional[str] = None
    ) -> Optional[AccountRecord]:
        """Descriptive metadata for a single account; None on an empty result."""
        rows = await self.client.search(customer_id, build_customer_query(), login_customer_id)
        return customer_rows_to_account(rows, customer_id)

    async def list_child_accounts(self, manager_id: str) -> List[AccountRecord]:
        """Immediate (level 1) children of a manager account."""
        rows = await self.client.search(manager_id, build_children_query(), manager_id)
        children = child_rows_to_accounts(rows)
        logger.info(
            f"Manager has {len(children)} direct child accounts",
            extra={"login_customer_id": manager_id},
        )
        return children

    async def check_hierarchy(
        self, manager_id: str, target_customer_id: str
    ) -> List[Dict[str, Any]]:
        """Raw customer_client rows for target under manager; empty when not managed."""
        return await self.client.search(
            manager_id, build_hierarchy_query(target_customer_id), manager_id
        )
