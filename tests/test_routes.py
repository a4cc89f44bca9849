"""
Tests for the HTTP surface: ingestion, runs, sink and diagnostics.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlmodel import select

from adsync.api.deps import get_settings, get_transport
from adsync.database import get_session
from adsync.main import app
from adsync.models.metric_models import DailyMetric
from conftest import MANAGER_ID, TARGET_ID, client_row, metric_row

SINK_HEADERS = {"x-api-key": "sink-key"}


@pytest.fixture
def api(session, settings, google):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_transport] = lambda: google.transport
    yield AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    app.dependency_overrides.clear()


def _metric_payload(**overrides):
    payload = {
        "date": "2024-01-01",
        "customer_id": TARGET_ID,
        "campaign_id": "101",
        "platform": "google_ads",
        "impressions": 1000,
        "clicks": 20,
        "spend": 50,
        "leads": 5,
    }
    payload.update(overrides)
    return payload


@pytest.mark.anyio
async def test_health_endpoint(api):
    async with api as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.anyio
async def test_ingest_scenario(api, google, make_credential):
    make_credential(login_customer_id=MANAGER_ID)
    google.hierarchy[TARGET_ID] = (200, {"results": [client_row(TARGET_ID, "Acme")]})
    google.stream = (200, [{"results": [metric_row("2024-01-03"), metric_row("2024-01-02")]}])

    async with api as client:
        response = await client.post(
            "/ingest",
            json={
                "user_id": "u1",
                "target_account_id": TARGET_ID,
                "start_date": "2024-01-01",
                "end_date": "2024-01-07",
            },
        )
        run_id = response.json()["run_id"]
        run_response = await client.get(f"/runs/{run_id}")
        list_response = await client.get("/runs", params={"user_id": "u1"})

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["records_processed"] == 2
    assert data["fallback_used"] is False
    assert data["date_range"] == {"start_date": "2024-01-01", "end_date": "2024-01-07"}

    assert run_response.json()["run"]["status"] == "completed"
    assert list_response.json()["count"] == 1


@pytest.mark.anyio
async def test_failed_ingest_returns_400_with_error(api, make_credential):
    make_credential(login_customer_id=MANAGER_ID)

    async with api as client:
        response = await client.post(
            "/ingest",
            json={"user_id": "u1", "target_account_id": TARGET_ID, "allow_fallback": False},
        )

    assert response.status_code == 400
    data = response.json()
    assert data["ok"] is False
    assert MANAGER_ID in data["error"]


@pytest.mark.anyio
async def test_ingest_rejects_bad_dates_and_missing_target(api, make_credential):
    make_credential()

    async with api as client:
        bad_date = await client.post(
            "/ingest", json={"user_id": "u1", "target_account_id": TARGET_ID, "start_date": "01/01/2024"}
        )
        no_target = await client.post("/ingest", json={"user_id": "u1"})

    assert bad_date.status_code == 422
    assert no_target.status_code == 400


@pytest.mark.anyio
async def test_unknown_run_is_404(api):
    async with api as client:
        response = await client.get("/runs/999")
    assert response.status_code == 404


@pytest.mark.anyio
async def test_discover_endpoint(api, google, make_credential):
    make_credential()
    google.accessible = (200, {"resourceNames": ["customers/111"]})

    async with api as client:
        response = await client.post("/accounts/discover", json={"user_id": "u1"})

    assert response.status_code == 200
    assert response.json()["accounts"][0]["customer_id"] == "111"


@pytest.mark.anyio
async def test_sink_requires_api_key(api):
    async with api as client:
        missing = await client.post("/sink/metrics", json=[_metric_payload()])
        wrong = await client.post(
            "/sink/metrics", json=[_metric_payload()], headers={"x-api-key": "nope"}
        )
    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.anyio
async def test_sink_metrics_is_idempotent(api, session):
    async with api as client:
        first = await client.post("/sink/metrics", json=[_metric_payload()], headers=SINK_HEADERS)
        second = await client.post(
            "/sink/metrics", json=_metric_payload(clicks=40), headers=SINK_HEADERS
        )

    assert first.json() == {"status": "success", "received": 1, "inserted": 1, "updated": 0}
    assert second.json()["updated"] == 1
    [row] = session.exec(select(DailyMetric)).all()
    assert row.clicks == 40
    assert row.ctr == 4.0


@pytest.mark.anyio
async def test_sink_rejects_invalid_batch(api, session):
    async with api as client:
        bad_date = await client.post(
            "/sink/metrics",
            json=[_metric_payload(), _metric_payload(date="2024/01/02")],
            headers=SINK_HEADERS,
        )
        bad_platform = await client.post(
            "/sink/metrics", json=[_metric_payload(platform="tiktok")], headers=SINK_HEADERS
        )
        bad_status = await client.post(
            "/sink/campaigns",
            json=[{"external_id": "1", "customer_id": TARGET_ID, "name": "X", "status": "ARCHIVED"}],
            headers=SINK_HEADERS,
        )

    assert bad_date.status_code == 422
    assert bad_platform.status_code == 422
    assert bad_status.status_code == 422
    assert session.exec(select(DailyMetric)).all() == []


@pytest.mark.anyio
async def test_sink_accounts_and_campaigns(api):
    async with api as client:
        accounts = await client.post(
            "/sink/accounts",
            json=[{"customer_id": "123", "name": "Acme Corp", "is_manager": False}],
            headers=SINK_HEADERS,
        )
        campaigns = await client.post(
            "/sink/campaigns",
            json={"external_id": "101", "customer_id": TARGET_ID, "name": "Brand"},
            headers=SINK_HEADERS,
        )

    assert accounts.json()["inserted"] == 1
    assert campaigns.json()["inserted"] == 1


@pytest.mark.anyio
async def test_hierarchy_diagnostic(api, google, make_credential):
    make_credential(customer_id=TARGET_ID, login_customer_id=MANAGER_ID)
    google.hierarchy[TARGET_ID] = (200, {"results": [client_row(TARGET_ID, "Acme")]})

    async with api as client:
        managed = await client.get("/google/hierarchy", params={"user_id": "u1"})
        unmanaged = await client.get(
            "/google/hierarchy", params={"user_id": "u1", "customer_id": "7778889999"}
        )

    assert managed.json()["managed"] is True
    assert unmanaged.json()["managed"] is False
    assert "7778889999" in unmanaged.json()["reason"]


@pytest.mark.anyio
async def test_manager_resolution_endpoint(api, google, make_credential):
    make_credential(customer_id=TARGET_ID, login_customer_id=MANAGER_ID)
    google.hierarchy[TARGET_ID] = (200, {"results": [client_row(TARGET_ID, "Acme")]})

    async with api as client:
        first = await client.get("/google/manager", params={"user_id": "u1"})
        second = await client.get("/google/manager", params={"user_id": "u1"})
        unmanaged = await client.get(
            "/google/manager", params={"user_id": "u1", "customer_id": "777-888-9999"}
        )

    assert first.status_code == 200
    assert first.json()["login_customer_id"] == MANAGER_ID
    assert first.json()["cached"] is False
    assert second.json()["cached"] is True
    assert unmanaged.status_code == 404
    assert "7778889999" in unmanaged.json()["detail"]
