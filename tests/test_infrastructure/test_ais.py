"""Tests for the AIS clients and the failover provider.

HTTP is served by ``httpx.MockTransport`` so no network is touched.
"""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest

from charter_coordinator.domain.enums import AisSource
from charter_coordinator.domain.exceptions import CollaboratorUnavailableError
from charter_coordinator.infrastructure.ais import (
    ExactEarthClient,
    FailoverAisProvider,
    MarineTrafficClient,
)

MT_URL = "https://mt.test"
EE_URL = "https://ee.test"

MT_ROW = {
    "MMSI": "657123456",
    "LAT": "4.4312",
    "LON": "7.1650",
    "SPEED": "112",
    "COURSE": "95",
    "HEADING": "",
    "STATUS": "0",
    "TIMESTAMP": "2030-06-12T08:00:00",
}

EE_BODY = {
    "latitude": 4.51,
    "longitude": 7.02,
    "timestamp": "2030-06-12T08:05:00Z",
    "speed_over_ground": 9.4,
    "course_over_ground": 181.0,
    "heading": None,
}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def marinetraffic(handler, api_key: str = "mt-key") -> MarineTrafficClient:
    return MarineTrafficClient(api_key, MT_URL, 5.0, client=mock_client(handler))


def exactearth(handler, api_key: str = "ee-key") -> ExactEarthClient:
    return ExactEarthClient(api_key, EE_URL, 5.0, client=mock_client(handler))


def unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


class TestMarineTrafficClient:
    @pytest.mark.asyncio
    async def test_parses_latest_row(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=[MT_ROW])

        position = await marinetraffic(handler).fetch_vessel_position("657123456")

        assert position is not None
        assert position.latitude == pytest.approx(4.4312)
        assert position.longitude == pytest.approx(7.165)
        assert position.timestamp == datetime(2030, 6, 12, 8, 0, tzinfo=UTC)
        assert position.provider == AisSource.MARINETRAFFIC
        assert position.meta["speed"] == 112.0
        assert position.meta["heading"] is None
        assert seen[0].endswith("/mmsi:657123456")
        assert "/mt-key/" in seen[0]

    @pytest.mark.asyncio
    async def test_empty_result_is_no_data(self) -> None:
        client = marinetraffic(lambda request: httpx.Response(200, json=[]))
        assert await client.fetch_vessel_position("657123456") is None

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(503)
            return httpx.Response(200, json=[MT_ROW])

        position = await marinetraffic(handler).fetch_vessel_position("657123456")

        assert position is not None
        assert calls == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401)

        with pytest.raises(httpx.HTTPStatusError):
            await marinetraffic(handler).fetch_vessel_position("657123456")
        assert calls == 1


class TestExactEarthClient:
    @pytest.mark.asyncio
    async def test_sends_bearer_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer ee-key"
            assert request.url.path == "/vessels/657123456/position"
            return httpx.Response(200, json=EE_BODY)

        position = await exactearth(handler).fetch_vessel_position("657123456")

        assert position is not None
        assert position.provider == AisSource.EXACTEARTH
        assert position.timestamp == datetime(2030, 6, 12, 8, 5, tzinfo=UTC)
        assert position.meta["course"] == 181.0

    @pytest.mark.asyncio
    async def test_unknown_vessel_is_no_data(self) -> None:
        client = exactearth(lambda request: httpx.Response(404))
        assert await client.fetch_vessel_position("000000000") is None


class TestFailoverAisProvider:
    @pytest.mark.asyncio
    async def test_primary_position_wins(self) -> None:
        provider = FailoverAisProvider(
            [
                marinetraffic(lambda request: httpx.Response(200, json=[MT_ROW])),
                exactearth(unreachable),
            ]
        )
        position = await provider.fetch_vessel_position("657123456")
        assert position.provider == AisSource.MARINETRAFFIC

    @pytest.mark.asyncio
    async def test_unconfigured_primary_is_skipped(self) -> None:
        provider = FailoverAisProvider(
            [
                marinetraffic(unreachable, api_key=""),
                exactearth(lambda request: httpx.Response(200, json=EE_BODY)),
            ]
        )
        position = await provider.fetch_vessel_position("657123456")
        assert position.provider == AisSource.EXACTEARTH

    @pytest.mark.asyncio
    async def test_primary_failure_falls_through(self) -> None:
        provider = FailoverAisProvider(
            [
                marinetraffic(lambda request: httpx.Response(403)),
                exactearth(lambda request: httpx.Response(200, json=EE_BODY)),
            ]
        )
        position = await provider.fetch_vessel_position("657123456")
        assert position.provider == AisSource.EXACTEARTH

    @pytest.mark.asyncio
    async def test_nothing_found_everywhere(self) -> None:
        provider = FailoverAisProvider(
            [
                marinetraffic(lambda request: httpx.Response(200, json=[])),
                exactearth(lambda request: httpx.Response(404)),
            ]
        )
        assert await provider.fetch_vessel_position("657123456") is None

    @pytest.mark.asyncio
    async def test_no_data_plus_failure_raises(self) -> None:
        provider = FailoverAisProvider(
            [
                marinetraffic(lambda request: httpx.Response(200, json=[])),
                exactearth(lambda request: httpx.Response(400)),
            ]
        )
        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            await provider.fetch_vessel_position("657123456")
        assert "EXACTEARTH" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_payload_counts_as_failure(self) -> None:
        provider = FailoverAisProvider(
            [marinetraffic(lambda request: httpx.Response(200, json=[{"LAT": "4.4"}]))]
        )
        with pytest.raises(CollaboratorUnavailableError):
            await provider.fetch_vessel_position("657123456")

    @pytest.mark.asyncio
    async def test_no_configured_clients(self) -> None:
        provider = FailoverAisProvider(
            [marinetraffic(unreachable, api_key=""), exactearth(unreachable, api_key="")]
        )
        assert await provider.fetch_vessel_position("657123456") is None
