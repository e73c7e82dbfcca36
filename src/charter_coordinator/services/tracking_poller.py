"""Tracking Poller; one tick of AIS position collection.

Triggered from outside (the ``/cron/poll-ais`` endpoint) on a fixed interval;
it never schedules itself. Each tick:

    1. Selects ACCEPTED bookings whose window contains now and whose escrow
       is FUNDED.
    2. Resolves each vessel's AIS identifier (MMSI, falling back to IMO).
    3. Fetches positions concurrently, bounded by a semaphore, a per-call
       timeout and an overall tick deadline.
    4. Appends one TrackingEvent per position found, sequentially on the
       tick's session once every fetch has finished.

Per-booking failures become outcomes; they never abort the tick.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from charter_coordinator.domain.enums import TrackingOutcomeStatus
from charter_coordinator.domain.geo import valid_coordinates
from charter_coordinator.domain.windows import utcnow
from charter_coordinator.infrastructure.database.orm_models import TrackingEvent
from charter_coordinator.infrastructure.database.repositories import (
    BookingRepository,
    TrackingEventRepository,
)
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from charter_coordinator.config import PlatformConfig
    from charter_coordinator.domain.collaborators import AisProvider, Position
    from charter_coordinator.infrastructure.database.orm_models import Booking

logger = get_logger(__name__)

# One tick at a time per process; the cron endpoint adds a Redis lock across processes.
_TICK_LOCK = asyncio.Lock()

LOCK_GRACE_SECONDS = 30.0


@dataclass(frozen=True)
class PollOutcome:
    booking_id: uuid.UUID
    vessel_id: uuid.UUID
    status: TrackingOutcomeStatus
    reason: str | None = None
    event_id: uuid.UUID | None = None
    provider: str | None = None


@dataclass
class PollSummary:
    tracked: int = 0
    skipped: int = 0
    failed: int = 0
    outcomes: list[PollOutcome] = field(default_factory=list)
    busy: bool = False

    @classmethod
    def from_outcomes(cls, outcomes: list[PollOutcome]) -> PollSummary:
        """``failed`` counts both failures and bookings with no position data."""
        counts = {status: 0 for status in TrackingOutcomeStatus}
        for outcome in outcomes:
            counts[outcome.status] += 1
        return cls(
            tracked=counts[TrackingOutcomeStatus.SUCCESS],
            skipped=counts[TrackingOutcomeStatus.SKIPPED],
            failed=counts[TrackingOutcomeStatus.FAILED]
            + counts[TrackingOutcomeStatus.NO_DATA],
            outcomes=outcomes,
        )


class TrackingPoller:
    def __init__(
        self,
        session: AsyncSession,
        platform: PlatformConfig,
        *,
        ais: AisProvider,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._platform = platform
        self._ais = ais
        self._clock = clock
        self._booking_repo = BookingRepository(session)
        self._tracking_repo = TrackingEventRepository(session)

    @property
    def lock_ttl_seconds(self) -> float:
        """How long a cross-process tick lock may be held before it expires."""
        return self._platform.poller_tick_deadline_seconds + LOCK_GRACE_SECONDS

    async def run(self) -> PollSummary:
        """Run one tick. Returns a ``busy`` summary if a tick is already running here."""
        if _TICK_LOCK.locked():
            logger.info("poller.tick_skipped", reason="tick already running")
            return PollSummary(busy=True)

        async with _TICK_LOCK:
            return await self._tick()

    async def _tick(self) -> PollSummary:
        now = self._clock()
        bookings = await self._booking_repo.get_trackable(now)
        logger.info("poller.tick_started", eligible=len(bookings))

        outcomes: dict[uuid.UUID, PollOutcome] = {}
        to_fetch: list[tuple[Booking, str]] = []
        for booking in bookings:
            identifier = booking.vessel.ais_identifier
            if identifier is None:
                outcomes[booking.id] = PollOutcome(
                    booking_id=booking.id,
                    vessel_id=booking.vessel_id,
                    status=TrackingOutcomeStatus.SKIPPED,
                    reason="No MMSI/IMO number",
                )
                continue
            to_fetch.append((booking, identifier))

        fetched = await self._fetch_all(to_fetch)

        # Writes happen sequentially on the single session
        for booking, _identifier in to_fetch:
            result = fetched[booking.id]
            outcomes[booking.id] = await self._record(booking, result)

        summary = PollSummary.from_outcomes(
            [outcomes[booking.id] for booking in bookings]
        )
        logger.info(
            "poller.tick_completed",
            tracked=summary.tracked,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        return summary

    async def _fetch_all(
        self, to_fetch: list[tuple[Booking, str]]
    ) -> dict[uuid.UUID, Any]:
        """Fetch every position concurrently.

        Returns a map of booking id to either a Position, None, or the
        exception that ended that booking's fetch.
        """
        if not to_fetch:
            return {}

        semaphore = asyncio.Semaphore(self._platform.poller_concurrency)
        timeout = self._platform.ais_request_timeout_seconds

        async def fetch_one(identifier: str) -> Position | None:
            async with semaphore:
                return await asyncio.wait_for(
                    self._ais.fetch_vessel_position(identifier), timeout=timeout
                )

        tasks = {
            asyncio.create_task(fetch_one(identifier)): booking.id
            for booking, identifier in to_fetch
        }
        done, pending = await asyncio.wait(
            tasks, timeout=self._platform.poller_tick_deadline_seconds
        )

        results: dict[uuid.UUID, Any] = {}
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("poller.tick_deadline_exceeded", cancelled=len(pending))
            for task in pending:
                results[tasks[task]] = TimeoutError("tick deadline exceeded")

        for task in done:
            exc = task.exception()
            results[tasks[task]] = exc if exc is not None else task.result()
        return results

    async def _record(self, booking: Booking, result: Any) -> PollOutcome:
        base = {"booking_id": booking.id, "vessel_id": booking.vessel_id}

        if isinstance(result, BaseException):
            reason = (
                "AIS request timed out"
                if isinstance(result, TimeoutError) and not str(result)
                else str(result) or type(result).__name__
            )
            logger.warning(
                "poller.fetch_failed",
                booking_id=str(booking.id),
                error=reason,
            )
            return PollOutcome(**base, status=TrackingOutcomeStatus.FAILED, reason=reason)

        if result is None:
            return PollOutcome(
                **base,
                status=TrackingOutcomeStatus.NO_DATA,
                reason="No position data from providers",
            )

        position: Position = result
        if not valid_coordinates(position.latitude, position.longitude):
            logger.warning(
                "poller.malformed_position",
                booking_id=str(booking.id),
                latitude=position.latitude,
                longitude=position.longitude,
            )
            return PollOutcome(
                **base,
                status=TrackingOutcomeStatus.FAILED,
                reason="Malformed position",
                provider=position.provider.value,
            )

        tracking_event = await self._tracking_repo.append(
            TrackingEvent(
                vessel_id=booking.vessel_id,
                booking_id=booking.id,
                latitude=position.latitude,
                longitude=position.longitude,
                recorded_at=position.timestamp,
                provider=position.provider.value,
                meta=position.meta,
            )
        )
        return PollOutcome(
            **base,
            status=TrackingOutcomeStatus.SUCCESS,
            event_id=tracking_event.id,
            provider=position.provider.value,
        )
