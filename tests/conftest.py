"""
Shared fixtures: in-memory database, test settings and a fake Google backend.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs

import httpx
import pytest
from sqlmodel import Session

from adsync.config import Settings
from adsync.database import build_engine, init_db
from adsync.models.credential_models import GoogleCredential

MANAGER_ID = "1112223333"
TARGET_ID = "4445556666"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        google_oauth_client_id="client-id",
        google_oauth_client_secret="client-secret",
        google_ads_developer_token="dev-token",
        default_login_customer_id=None,
        allow_fallback_no_mcc=True,
        discovery_expand_children=True,
        discovery_concurrency=3,
        default_lookback_days=7,
        token_refresh_skew_seconds=0,
        http_max_retries=2,
        http_retry_base_delay=0,
        ingest_api_key="sink-key",
        database_url="sqlite://",
        scheduler_enabled=False,
    )


def aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@pytest.fixture
def make_credential(session):
    def _make(
        user_id: str = "u1",
        access_token: Optional[str] = "valid-token",
        expires_in: Optional[timedelta] = timedelta(hours=1),
        customer_id: Optional[str] = None,
        login_customer_id: Optional[str] = None,
        refresh_token: str = "refresh-1",
        created_at: Optional[datetime] = None,
    ) -> GoogleCredential:
        now = datetime.now(timezone.utc)
        cred = GoogleCredential(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expiry=now + expires_in if expires_in is not None else None,
            customer_id=customer_id,
            login_customer_id=login_customer_id,
            created_at=created_at or now,
        )
        session.add(cred)
        session.commit()
        session.refresh(cred)
        return cred

    return _make


def metric_row(
    date: str,
    campaign_id: Optional[str] = "101",
    name: Optional[str] = "Brand Search",
    status: Optional[str] = "ENABLED",
    impressions: str = "1000",
    clicks: str = "20",
    cost_micros: str = "50000000",
    conversions: float = 5.0,
    conversions_value: float = 200.0,
) -> Dict[str, Any]:
    """A searchStream row in the REST (camelCase, int64-as-string) shape."""
    campaign: Dict[str, Any] = {}
    if campaign_id is not None:
        campaign["id"] = campaign_id
        campaign["resourceName"] = f"customers/{TARGET_ID}/campaigns/{campaign_id}"
    if name is not None:
        campaign["name"] = name
    if status is not None:
        campaign["status"] = status
    return {
        "segments": {"date": date},
        "campaign": campaign,
        "metrics": {
            "impressions": impressions,
            "clicks": clicks,
            "costMicros": cost_micros,
            "conversions": conversions,
            "conversionsValue": conversions_value,
        },
    }


def customer_row(customer_id: str, name: str, manager: bool = False) -> Dict[str, Any]:
    return {
        "customer": {
            "resourceName": f"customers/{customer_id}",
            "id": customer_id,
            "descriptiveName": name,
            "currencyCode": "BRL",
            "timeZone": "America/Sao_Paulo",
            "manager": manager,
            "status": "ENABLED",
        }
    }


def client_row(customer_id: str, name: str, manager: bool = False, level: int = 1) -> Dict[str, Any]:
    return {
        "customerClient": {
            "resourceName": f"customers/{MANAGER_ID}/customerClients/{customer_id}",
            "clientCustomer": f"customers/{customer_id}",
            "id": customer_id,
            "descriptiveName": name,
            "currencyCode": "BRL",
            "timeZone": "America/Sao_Paulo",
            "manager": manager,
            "status": "ENABLED",
            "level": str(level),
        }
    }


def google_error(status: str, message: str, code: int = 403, detail: str = "") -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": {"code": code, "message": message, "status": status}}
    if detail:
        body["error"]["details"] = [
            {"errors": [{"errorCode": {"authorizationError": detail}, "message": message}]}
        ]
    return body


Canned = Tuple[int, Any]


class FakeGoogle:
    """Answers Google OAuth and Ads REST calls from canned data and records every request."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token: Canned = (200, {"access_token": "fresh-token", "expires_in": 3600})
        self.accessible: Canned = (200, {"resourceNames": [f"customers/{TARGET_ID}"]})
        self.customers: Dict[str, Canned] = {}
        self.children: Dict[str, Canned] = {}
        # keyed by target, or by (manager, target) when answers differ per manager
        self.hierarchy: Dict[Any, Canned] = {}
        self.stream: Canned = (200, [{"results": []}])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, suffix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def queries(self) -> List[str]:
        return [json.loads(r.content)["query"] for r in self.calls("googleAds:search")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(self.token[0], json=self.token[1])
        if path.endswith("customers:listAccessibleCustomers"):
            return httpx.Response(self.accessible[0], json=self.accessible[1])

        customer_id = path.split("/")[3]
        if path.endswith("googleAds:searchStream"):
            return httpx.Response(self.stream[0], json=self.stream[1])
        if path.endswith("googleAds:search"):
            query = json.loads(request.content)["query"]
            if "customer_client.id =" in query:
                target = query.rsplit("=", 1)[1].strip()
                status, body = self.hierarchy.get(
                    (customer_id, target), self.hierarchy.get(target, (200, {"results": []}))
                )
            elif "customer_client.level = 1" in query:
                status, body = self.children.get(customer_id, (200, {"results": []}))
            else:
                status, body = self.customers.get(customer_id, (200, {"results": []}))
            return httpx.Response(status, json=body)

        return httpx.Response(404, json=google_error("NOT_FOUND", f"No route for {path}", 404))


def form_of(request: httpx.Request) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.fixture
def google():
    return FakeGoogle()
