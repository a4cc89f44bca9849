"""
Tests for resolving which manager account serves a target account.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from adsync.connectors.google.client import GoogleAdsClient
from adsync.connectors.google.endpoints import GoogleAdsEndpoints
from adsync.core.errors import TransientError
from adsync.ingestion.manager_resolver import ManagerResolver
from adsync.models.account_models import AccountBinding
from conftest import MANAGER_ID, TARGET_ID, client_row, google_error

OTHER_MANAGER = "9990001111"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _endpoints(settings, google):
    return GoogleAdsEndpoints(GoogleAdsClient("token", settings, google.transport))


def _managed_by(google, manager_id):
    google.hierarchy[(manager_id, TARGET_ID)] = (200, {"results": [client_row(TARGET_ID, "Acme")]})


def _managers_asked(google):
    return [r.url.path.split("/")[3] for r in google.calls("googleAds:search")]


def test_candidates_cover_every_credential_and_the_default(session, settings, make_credential):
    settings.default_login_customer_id = "555-000-1111"
    make_credential(login_customer_id="999-000-1111", created_at=datetime(2023, 1, 1, tzinfo=timezone.utc))
    make_credential(login_customer_id=MANAGER_ID, created_at=datetime(2023, 6, 1, tzinfo=timezone.utc))
    make_credential(login_customer_id=None)
    make_credential(user_id="someone-else", login_customer_id="1231231234")

    resolver = ManagerResolver(session, settings)

    assert resolver.candidates("u1") == [MANAGER_ID, OTHER_MANAGER, "5550001111"]
    assert resolver.candidates("u1", preferred="5550001111") == ["5550001111", MANAGER_ID, OTHER_MANAGER]
    assert resolver.candidates("nobody") == ["5550001111"]


@pytest.mark.anyio
async def test_first_managing_candidate_wins_and_is_remembered(session, settings, google):
    _managed_by(google, OTHER_MANAGER)
    resolver = ManagerResolver(session, settings, clock=lambda: NOW)

    resolution = await resolver.resolve(
        _endpoints(settings, google), "u1", "444-555-6666", [MANAGER_ID, OTHER_MANAGER]
    )

    assert resolution.ok is True
    assert resolution.login_customer_id == OTHER_MANAGER
    assert resolution.cached is False
    assert _managers_asked(google) == [MANAGER_ID, OTHER_MANAGER]

    [binding] = session.exec(select(AccountBinding)).all()
    assert (binding.user_id, binding.customer_id) == ("u1", TARGET_ID)
    assert binding.resolved_login_customer_id == OTHER_MANAGER


@pytest.mark.anyio
async def test_cached_binding_skips_validation(session, settings, google):
    _managed_by(google, MANAGER_ID)
    resolver = ManagerResolver(session, settings, clock=lambda: NOW)
    await resolver.resolve(_endpoints(settings, google), "u1", TARGET_ID, [MANAGER_ID])
    google.requests.clear()

    resolver.clock = lambda: NOW + timedelta(hours=23)
    again = await resolver.resolve(_endpoints(settings, google), "u1", TARGET_ID, [MANAGER_ID])

    assert again.login_customer_id == MANAGER_ID
    assert again.cached is True
    assert google.calls("googleAds:search") == []


@pytest.mark.anyio
async def test_no_managing_candidate_is_cached_as_a_denial(session, settings, google):
    resolver = ManagerResolver(session, settings, clock=lambda: NOW)

    first = await resolver.resolve(
        _endpoints(settings, google), "u1", TARGET_ID, [MANAGER_ID, OTHER_MANAGER]
    )
    second = await resolver.resolve(
        _endpoints(settings, google), "u1", TARGET_ID, [MANAGER_ID, OTHER_MANAGER]
    )

    assert first.ok is False
    assert MANAGER_ID in first.reason and OTHER_MANAGER in first.reason
    assert TARGET_ID in first.reason
    assert second.ok is False and second.cached is True
    assert TARGET_ID in second.reason
    assert len(google.calls("googleAds:search")) == 2

    [binding] = session.exec(select(AccountBinding)).all()
    assert binding.resolved_login_customer_id == ""


@pytest.mark.anyio
async def test_expired_binding_is_verified_again(session, settings, google):
    resolver = ManagerResolver(session, settings, clock=lambda: NOW)
    await resolver.resolve(_endpoints(settings, google), "u1", TARGET_ID, [MANAGER_ID])

    _managed_by(google, MANAGER_ID)
    resolver.clock = lambda: NOW + timedelta(hours=24)
    resolution = await resolver.resolve(_endpoints(settings, google), "u1", TARGET_ID, [MANAGER_ID])

    assert resolution.login_customer_id == MANAGER_ID
    assert resolution.cached is False
    [binding] = session.exec(select(AccountBinding)).all()
    assert binding.resolved_login_customer_id == MANAGER_ID


@pytest.mark.anyio
async def test_outage_propagates_without_caching(session, settings, google):
    google.hierarchy[TARGET_ID] = (503, google_error("UNAVAILABLE", "The service is unavailable.", 503))
    resolver = ManagerResolver(session, settings, clock=lambda: NOW)

    with pytest.raises(TransientError):
        await resolver.resolve(_endpoints(settings, google), "u1", TARGET_ID, [MANAGER_ID])

    assert session.exec(select(AccountBinding)).all() == []
