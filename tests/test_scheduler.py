"""
Tests for the daily ingestion batch.
"""

from datetime import datetime, timezone

import pytest

from adsync.scheduler.jobs import ingest_all_linked
from conftest import TARGET_ID, metric_row


@pytest.mark.anyio
async def test_batch_ingests_every_linked_user(session, settings, google, make_credential):
    make_credential(user_id="u1", customer_id=TARGET_ID)
    make_credential(user_id="u2", customer_id="777-888-9999")
    make_credential(user_id="u3")
    google.stream = (200, [{"results": [metric_row("2024-01-02")]}])

    results = await ingest_all_linked(session, settings, google.transport)

    assert sorted(r.customer_id for r in results) == [TARGET_ID, "7778889999"]
    assert all(r.ok for r in results)


@pytest.mark.anyio
async def test_only_latest_credential_per_user_counts(session, settings, google, make_credential):
    make_credential(
        user_id="u1", customer_id="1111111111", created_at=datetime(2023, 1, 1, tzinfo=timezone.utc)
    )
    make_credential(user_id="u1", customer_id=None)

    results = await ingest_all_linked(session, settings, google.transport)

    assert results == []


@pytest.mark.anyio
async def test_failing_user_does_not_stop_the_batch(session, settings, google, make_credential):
    make_credential(user_id="u1", customer_id=TARGET_ID, access_token=None, expires_in=None)
    make_credential(user_id="u2", customer_id="7778889999")
    google.token = (400, {"error": "invalid_grant"})

    results = await ingest_all_linked(session, settings, google.transport)

    by_customer = {r.customer_id: r.ok for r in results}
    assert by_customer == {TARGET_ID: False, "7778889999": True}
