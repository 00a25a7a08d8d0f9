from __future__ import annotations

from datetime import timedelta
import time

import aiohttp
import pytest

from conftest import utc
from http_fakes import FakeSession, MockResponse
from custom_components.home_energy.api import (
    AuthenticationError,
    CommunicationError,
    DataUnavailableError,
    RateLimitError,
)
from custom_components.home_energy.backend.glowmarkt import GlowmarktClient
from custom_components.home_energy.const import GLOWMARKT_API_BASE, GLOWMARKT_APPLICATION_ID
from custom_components.home_energy.domain.history import (
    AggregationFunction,
    AggregationPeriod,
)

T0 = utc(2024, 3, 1)


def _auth(token: str = "tok-1") -> MockResponse:
    return MockResponse(200, {"valid": True, "token": token, "exp": time.time() + 7200})


def _client(session: FakeSession) -> GlowmarktClient:
    return GlowmarktClient(session, "user@example.com", "secret")


@pytest.mark.asyncio
async def test_login_and_token_headers() -> None:
    session = FakeSession()
    session.queue(_auth(), MockResponse(200, []))
    client = _client(session)

    await client.list_virtual_entities()

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", f"{GLOWMARKT_API_BASE}/auth")
    assert kwargs["json"] == {"username": "user@example.com", "password": "secret"}
    assert kwargs["headers"]["applicationId"] == GLOWMARKT_APPLICATION_ID
    assert "token" not in kwargs["headers"]
    _, url, kwargs = session.calls[1]
    assert url == f"{GLOWMARKT_API_BASE}/virtualentity"
    assert kwargs["headers"]["token"] == "tok-1"


@pytest.mark.asyncio
async def test_token_is_reused() -> None:
    session = FakeSession()
    session.queue(_auth(), MockResponse(200, []), MockResponse(200, []))
    client = _client(session)

    await client.list_virtual_entities()
    await client.list_virtual_entities()

    assert [call[0] for call in session.calls] == ["POST", "GET", "GET"]


@pytest.mark.asyncio
async def test_401_triggers_single_relogin() -> None:
    session = FakeSession()
    session.queue(
        _auth("old"),
        MockResponse(401, {"error": "expired"}),
        _auth("new"),
        MockResponse(200, []),
    )
    client = _client(session)

    assert await client.list_virtual_entities() == []
    assert session.calls[3][2]["headers"]["token"] == "new"


@pytest.mark.asyncio
async def test_repeated_401_raises_auth_error() -> None:
    session = FakeSession()
    session.queue(
        _auth("old"),
        MockResponse(401, {}),
        _auth("new"),
        MockResponse(401, {}),
    )
    with pytest.raises(AuthenticationError):
        await _client(session).list_virtual_entities()


@pytest.mark.asyncio
async def test_rejected_login_raises_auth_error() -> None:
    session = FakeSession()
    session.queue(MockResponse(401, {"valid": False}))
    with pytest.raises(AuthenticationError):
        await _client(session).list_virtual_entities()


@pytest.mark.asyncio
async def test_invalid_login_payload_raises_auth_error() -> None:
    session = FakeSession()
    session.queue(MockResponse(200, {"valid": False, "token": ""}))
    with pytest.raises(AuthenticationError):
        await _client(session).list_virtual_entities()


@pytest.mark.asyncio
async def test_status_and_transport_errors() -> None:
    session = FakeSession()
    session.queue(_auth(), MockResponse(429, {}))
    client = _client(session)
    with pytest.raises(RateLimitError):
        await client.list_virtual_entities()

    session.queue(MockResponse(503, {}, text_data="down"))
    with pytest.raises(CommunicationError) as err:
        await client.list_virtual_entities()
    assert err.value.status == 503

    session.queue(aiohttp.ClientConnectionError("reset"))
    with pytest.raises(CommunicationError):
        await client.list_virtual_entities()


@pytest.mark.asyncio
async def test_list_resources_deduplicates() -> None:
    entities = [
        {
            "veId": "ve-1",
            "name": "Home",
            "resources": [
                {"resourceId": "r1", "classifier": "electricity.consumption", "name": "Electricity", "baseUnit": "kWh"},
                {"resourceId": "r2", "classifier": "gas.consumption", "name": "Gas", "baseUnit": "kWh"},
            ],
        },
        {"veId": "ve-2", "resources": [{"resourceId": "r1"}]},
        {"broken": True},
    ]
    session = FakeSession()
    session.queue(_auth(), MockResponse(200, entities))

    resources = await _client(session).list_resources()

    assert [r.resource_id for r in resources] == ["r1", "r2"]
    assert resources[0].base_unit == "kWh"


@pytest.mark.asyncio
async def test_get_bounds() -> None:
    first = int(T0.timestamp())
    last = int((T0 + timedelta(days=30)).timestamp())
    session = FakeSession()
    session.queue(
        _auth(),
        MockResponse(200, {"data": {"firstTs": first}}),
        MockResponse(200, {"data": {"lastTs": last}}),
    )

    bounds = await _client(session).get_bounds("r1")

    assert bounds.first_available == T0
    assert bounds.last_available == T0 + timedelta(days=30)
    assert session.calls[1][1].endswith("/resource/r1/first-time")
    assert session.calls[2][1].endswith("/resource/r1/last-time")


@pytest.mark.asyncio
async def test_get_bounds_without_data() -> None:
    session = FakeSession()
    session.queue(
        _auth(),
        MockResponse(200, {"data": {}}),
        MockResponse(200, {"data": {}}),
    )
    with pytest.raises(DataUnavailableError):
        await _client(session).get_bounds("r1")


@pytest.mark.asyncio
async def test_get_samples_query_and_filtering() -> None:
    start = T0
    end = T0 + timedelta(hours=2)
    rows = [
        [int((start + timedelta(minutes=30)).timestamp()), 0.2],
        [int(start.timestamp()), 0.1],
        [int((start + timedelta(hours=1)).timestamp()), None],
        [int(end.timestamp()), 9.9],
        [int((start - timedelta(minutes=30)).timestamp()), 9.9],
    ]
    session = FakeSession()
    session.queue(_auth(), MockResponse(200, {"data": rows, "units": "kWh"}))

    samples = await _client(session).get_samples(
        "r1", start, end, AggregationPeriod.PT30M, AggregationFunction.SUM
    )

    assert [(s.timestamp, s.value) for s in samples] == [
        (start, 0.1),
        (start + timedelta(minutes=30), 0.2),
    ]
    _, url, kwargs = session.calls[1]
    assert url.endswith("/resource/r1/readings")
    assert kwargs["params"] == {
        "from": "2024-03-01T00:00:00",
        "to": "2024-03-01T01:59:59",
        "period": "PT30M",
        "function": "sum",
        "offset": 0,
    }


@pytest.mark.asyncio
async def test_get_samples_empty_window_skips_request() -> None:
    session = FakeSession()
    samples = await _client(session).get_samples(
        "r1", T0, T0, AggregationPeriod.PT30M, AggregationFunction.SUM
    )
    assert samples == []
    assert session.calls == []


@pytest.mark.asyncio
async def test_malformed_readings_payload() -> None:
    session = FakeSession()
    session.queue(
        _auth(),
        MockResponse(200, headers={"Content-Type": "text/plain"}, text_data="oops"),
    )
    with pytest.raises(CommunicationError):
        await _client(session).get_samples(
            "r1", T0, T0 + timedelta(hours=1), AggregationPeriod.PT30M, AggregationFunction.SUM
        )
