"""ADSYNC - Google Ads API Client.

Handles authentication headers, retry logic, rate limiting, and pagination
for the Google Ads REST interface (GAQL over googleAds:search and
googleAds:searchStream).
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from adsync.config import Settings
from adsync.core.errors import TransientError, UpstreamError
from adsync.core.logging import get_logger
from adsync.models.account_models import sanitize_customer_id

logger = get_logger("google.client")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


# ── Response Shapes ──


class AccessibleCustomersResponse(BaseModel):
    resourceNames: List[str] = []


class SearchResponse(BaseModel):
    results: List[Dict[str, Any]] = []
    nextPageToken: Optional[str] = None


class StreamBatch(BaseModel):
    results: List[Dict[str, Any]] = []


def _error_message(body: Any, fallback: str) -> str:
    """Pull the human message out of a Google error payload."""
    if isinstance(body, list) and body:
        body = body[0]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return fallback


class GoogleAdsClient:
    """Async HTTP client for the Google Ads API."""

    def __init__(
        self,
        access_token: str,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.settings = settings
        self.api_base = settings.google_ads_api_base
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.settings.http_timeout_seconds, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "GoogleAdsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _headers(self, login_customer_id: Optional[str]) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "developer-token": self.settings.google_ads_developer_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if login_customer_id:
            headers["login-customer-id"] = sanitize_customer_id(login_customer_id)
        return headers

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        json: Dict[str, Any] | None = None,
        login_customer_id: Optional[str] = None,
    ) -> Any:
        """Make a request with retry + rate-limit handling."""
        client = await self._get_client()
        headers = self._headers(login_customer_id)
        max_retries = self.settings.http_max_retries
        base_delay = self.settings.http_retry_base_delay
        last_error: Optional[UpstreamError] = None

        for attempt in range(1, max_retries + 1):
            started = time.monotonic()
            try:
                resp = await client.request(method, url, json=json, headers=headers)
            except httpx.RequestError as e:
                last_error = TransientError(f"Request to Google Ads failed: {e!r}")
                if attempt < max_retries:
                    wait = base_delay * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e!r}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise last_error from e

            duration_ms = int((time.monotonic() - started) * 1000)
            logger.debug(
                f"{method} {url} -> {resp.status_code}",
                extra={
                    "endpoint": url,
                    "status_code": resp.status_code,
                    "duration_ms": duration_ms,
                    "login_customer_id": headers.get("login-customer-id"),
                },
            )

            if resp.is_success:
                try:
                    return resp.json()
                except ValueError as e:
                    raise UpstreamError(
                        f"Google Ads returned a non-JSON body from {url}",
                        resp.status_code,
                        resp.text,
                    ) from e

            try:
                body: Any = resp.json()
            except ValueError:
                body = None
            message = _error_message(body, resp.text or resp.reason_phrase)

            if resp.status_code in RETRYABLE_STATUS:
                last_error = TransientError(
                    f"Google Ads API error ({resp.status_code}): {message}",
                    resp.status_code,
                    resp.text,
                )
                if attempt < max_retries:
                    wait = base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Google Ads returned {resp.status_code}. Retrying in {wait}s "
                        f"(attempt {attempt}/{max_retries})"
                    )
                    await asyncio.sleep(wait)
                    continue
                raise last_error

            raise UpstreamError(
                f"Google Ads API error ({resp.status_code}): {message}",
                resp.status_code,
                resp.text,
            )

        raise last_error or TransientError("Max retries exhausted")

    # ── Account Listing ──

    async def list_accessible_customers(self) -> List[str]:
        """Return the customer ids the credential can reach directly."""
        url = f"{self.api_base}/customers:listAccessibleCustomers"
        payload = await self._request("GET", url)
        try:
            parsed = AccessibleCustomersResponse.model_validate(payload)
        except ValidationError as e:
            raise UpstreamError(f"Unexpected listAccessibleCustomers payload: {e}") from e
        ids = [sanitize_customer_id(name.split("/")[-1]) for name in parsed.resourceNames]
        logger.info(f"Credential can access {len(ids)} customers")
        return [cid for cid in ids if cid]

    # ── GAQL ──

    async def search(
        self,
        customer_id: str,
        query: str,
        login_customer_id: Optional[str] = None,
        max_pages: int = 50,
    ) -> List[Dict[str, Any]]:
        """Run a paged GAQL search and return every result row."""
        url = f"{self.api_base}/customers/{sanitize_customer_id(customer_id)}/googleAds:search"
        rows: List[Dict[str, Any]] = []
        body: Dict[str, Any] = {"query": query}

        for _ in range(max_pages):
            payload = await self._request("POST", url, body, login_customer_id)
            try:
                page = SearchResponse.model_validate(payload)
            except ValidationError as e:
                raise UpstreamError(f"Unexpected search payload: {e}") from e
            rows.extend(page.results)
            if not page.nextPageToken:
                break
            body = {"query": query, "pageToken": page.nextPageToken}

        return rows

    async def search_stream(
        self,
        customer_id: str,
        query: str,
        login_customer_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Run a GAQL searchStream and flatten its result batches."""
        url = f"{self.api_base}/customers/{sanitize_customer_id(customer_id)}/googleAds:searchStream"
        payload = await self._request("POST", url, {"query": query}, login_customer_id)
        batches = payload if isinstance(payload, list) else [payload]

        rows: List[Dict[str, Any]] = []
        for raw in batches:
            try:
                batch = StreamBatch.model_validate(raw)
            except ValidationError as e:
                raise UpstreamError(f"Unexpected searchStream payload: {e}") from e
            rows.extend(batch.results)

        logger.info(f"Fetched {len(rows)} rows across {len(batches)} stream batches")
        return rows
