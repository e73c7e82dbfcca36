"""AIS position providers.

Two HTTP clients plus a failover wrapper:
    - MarineTrafficClient:  primary source, keyed by MMSI (or IMO).
    - ExactEarthClient:     secondary source, bearer-token API.
    - FailoverAisProvider:  asks each configured client in order and returns
                            the first position found.

A client with no API key configured is skipped rather than called. Transient
transport failures and 5xx responses are retried with exponential backoff
via tenacity; anything else propagates to the tracking poller, which records
the booking as failed for this tick.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from charter_coordinator.config import PlatformConfig, Settings
from charter_coordinator.domain.collaborators import Position
from charter_coordinator.domain.enums import AisSource
from charter_coordinator.domain.exceptions import CollaboratorUnavailableError
from charter_coordinator.logging_config import get_logger

logger = get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


_transient_retry = retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        value = raw
    else:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _optional_float(raw: Any) -> float | None:
    if raw in (None, ""):
        return None
    return float(raw)


class MarineTrafficClient:
    """MarineTraffic ``exportvessel`` API (positions within the last hour)."""

    source = AisSource.MARINETRAFFIC

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_vessel_position(self, identifier: str) -> Position | None:
        rows = await self._get(identifier)
        if not rows:
            return None
        vessel = rows[0]
        return Position(
            latitude=float(vessel["LAT"]),
            longitude=float(vessel["LON"]),
            timestamp=_parse_timestamp(vessel["TIMESTAMP"]),
            provider=self.source,
            meta={
                "speed": _optional_float(vessel.get("SPEED")),
                "course": _optional_float(vessel.get("COURSE")),
                "heading": _optional_float(vessel.get("HEADING")),
                "status": vessel.get("STATUS"),
            },
        )

    @_transient_retry
    async def _get(self, identifier: str) -> list[dict[str, Any]]:
        url = (
            f"{self._base_url}/exportvessel/v:8/{self._api_key}"
            f"/timespan:60/protocol:json/mmsi:{identifier}"
        )
        response = await self._client.get(url)
        response.raise_for_status()
        data = response.json()
        return data if isinstance(data, list) else []

    async def aclose(self) -> None:
        await self._client.aclose()


class ExactEarthClient:
    """exactEarth vessel position API."""

    source = AisSource.EXACTEARTH

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_vessel_position(self, identifier: str) -> Position | None:
        data = await self._get(identifier)
        if not data or data.get("latitude") is None:
            return None
        return Position(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            provider=self.source,
            meta={
                "speed": _optional_float(data.get("speed_over_ground")),
                "course": _optional_float(data.get("course_over_ground")),
                "heading": _optional_float(data.get("heading")),
            },
        )

    @_transient_retry
    async def _get(self, identifier: str) -> dict[str, Any] | None:
        response = await self._client.get(
            f"{self._base_url}/vessels/{identifier}/position",
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()


class FailoverAisProvider:
    """Ask each configured client in order; first position wins.

    Returns None when every configured client answered with no data. Raises
    CollaboratorUnavailableError when nothing was found and at least one
    client failed, so the poller can tell "no data" from "provider down".
    """

    def __init__(self, clients: list[MarineTrafficClient | ExactEarthClient]) -> None:
        self._clients = clients

    @classmethod
    def from_settings(
        cls, settings: Settings, platform: PlatformConfig
    ) -> FailoverAisProvider:
        timeout = platform.ais_request_timeout_seconds
        return cls(
            [
                MarineTrafficClient(
                    settings.marinetraffic_api_key,
                    settings.marinetraffic_base_url,
                    timeout,
                ),
                ExactEarthClient(
                    settings.exactearth_api_key,
                    settings.exactearth_base_url,
                    timeout,
                ),
            ]
        )

    async def fetch_vessel_position(self, identifier: str) -> Position | None:
        errors: list[str] = []
        for client in self._clients:
            if not client.configured:
                logger.debug("ais.provider_not_configured", provider=client.source)
                continue
            try:
                position = await client.fetch_vessel_position(identifier)
            except (httpx.HTTPError, KeyError, ValueError) as exc:
                logger.warning(
                    "ais.provider_failed",
                    provider=client.source,
                    identifier=identifier,
                    error=str(exc),
                )
                errors.append(f"{client.source}: {exc}")
                continue
            if position is not None:
                return position

        if errors:
            raise CollaboratorUnavailableError("AIS provider", "; ".join(errors))
        return None

    async def aclose(self) -> None:
        for client in self._clients:
            await client.aclose()
