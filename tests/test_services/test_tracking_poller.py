"""Tests for the Tracking Poller."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from charter_coordinator.config import PlatformConfig
from charter_coordinator.domain.enums import AisSource, TrackingOutcomeStatus
from charter_coordinator.infrastructure.database.orm_models import TrackingEvent, Vessel
from charter_coordinator.infrastructure.database.repositories import (
    TrackingEventRepository,
)
from charter_coordinator.services import tracking_poller
from charter_coordinator.services.tracking_poller import PollOutcome, PollSummary, TrackingPoller

from conftest import OWNER_ID, StubAisProvider, make_position

MMSI = "657123456"
MID_CHARTER = timedelta(days=11)


def _poller(session, clock, ais, **config) -> TrackingPoller:
    platform = PlatformConfig(version="t", **config)
    return TrackingPoller(session, platform, ais=ais, clock=clock)


class TestSummary:
    def test_no_data_counts_as_failed(self) -> None:
        import uuid

        outcomes = [
            PollOutcome(uuid.uuid4(), uuid.uuid4(), TrackingOutcomeStatus.SUCCESS),
            PollOutcome(uuid.uuid4(), uuid.uuid4(), TrackingOutcomeStatus.NO_DATA),
            PollOutcome(uuid.uuid4(), uuid.uuid4(), TrackingOutcomeStatus.FAILED),
            PollOutcome(uuid.uuid4(), uuid.uuid4(), TrackingOutcomeStatus.SKIPPED),
        ]
        summary = PollSummary.from_outcomes(outcomes)
        assert (summary.tracked, summary.skipped, summary.failed) == (1, 1, 2)

    def test_lock_ttl_exceeds_deadline(self, session, clock) -> None:
        poller = _poller(session, clock, StubAisProvider(), poller_tick_deadline_seconds=60)
        assert poller.lock_ttl_seconds > 60


class TestTick:
    @pytest.mark.asyncio
    async def test_records_position_for_active_funded_charter(
        self, funded_escrow, session, clock
    ) -> None:
        escrow = await funded_escrow()
        clock.advance(MID_CHARTER)
        ais = StubAisProvider({MMSI: make_position(timestamp=clock.now)})

        summary = await _poller(session, clock, ais).run()

        assert (summary.tracked, summary.skipped, summary.failed) == (1, 0, 0)
        assert ais.calls == [MMSI]
        outcome = summary.outcomes[0]
        assert outcome.status == TrackingOutcomeStatus.SUCCESS
        assert outcome.booking_id == escrow.booking_id
        assert outcome.provider == AisSource.MARINETRAFFIC

        events = await TrackingEventRepository(session).route_for_booking(escrow.booking_id)
        assert len(events) == 1
        assert events[0].id == outcome.event_id
        assert events[0].latitude == pytest.approx(4.35)

    @pytest.mark.asyncio
    async def test_nothing_to_track_before_charter_starts(
        self, funded_escrow, session, clock
    ) -> None:
        await funded_escrow()
        ais = StubAisProvider({MMSI: make_position()})

        summary = await _poller(session, clock, ais).run()

        assert summary.outcomes == []
        assert ais.calls == []

    @pytest.mark.asyncio
    async def test_unfunded_booking_is_not_tracked(
        self, signed_contract, session, clock
    ) -> None:
        await signed_contract()
        clock.advance(MID_CHARTER)
        ais = StubAisProvider({MMSI: make_position()})

        summary = await _poller(session, clock, ais).run()

        assert summary.outcomes == []

    @pytest.mark.asyncio
    async def test_window_end_is_inclusive(
        self, funded_escrow, session, clock, charter_window
    ) -> None:
        await funded_escrow()
        clock.now = charter_window.end
        ais = StubAisProvider({MMSI: make_position()})

        summary = await _poller(session, clock, ais).run()

        assert summary.tracked == 1

    @pytest.mark.asyncio
    async def test_vessel_without_identifier_is_skipped(
        self, funded_escrow, session, clock, vessel
    ) -> None:
        vessel.specs = {"pricing": vessel.specs["pricing"]}
        await session.flush()
        await funded_escrow()
        clock.advance(MID_CHARTER)
        ais = StubAisProvider()

        summary = await _poller(session, clock, ais).run()

        assert summary.skipped == 1
        assert summary.outcomes[0].reason == "No MMSI/IMO number"
        assert ais.calls == []

    @pytest.mark.asyncio
    async def test_one_skipped_one_tracked(
        self, funded_escrow, session, clock
    ) -> None:
        unidentified = Vessel(
            owner_id=OWNER_ID,
            name="MV Harmattan",
            vessel_type="SUPPLY_VESSEL",
            status="ACTIVE",
            specs={"pricing": {"dailyRate": 1200, "currency": "NGN"}},
        )
        session.add(unidentified)
        await session.flush()

        tracked_escrow = await funded_escrow()
        skipped_escrow = await funded_escrow(vessel_id=unidentified.id)
        clock.advance(MID_CHARTER)
        ais = StubAisProvider({MMSI: make_position(timestamp=clock.now)})

        summary = await _poller(session, clock, ais).run()

        assert (summary.tracked, summary.skipped, summary.failed) == (1, 1, 0)
        statuses = {o.booking_id: o.status for o in summary.outcomes}
        assert statuses == {
            tracked_escrow.booking_id: TrackingOutcomeStatus.SUCCESS,
            skipped_escrow.booking_id: TrackingOutcomeStatus.SKIPPED,
        }
        assert ais.calls == [MMSI]

        repo = TrackingEventRepository(session)
        assert len(await repo.route_for_booking(tracked_escrow.booking_id)) == 1
        assert await repo.route_for_booking(skipped_escrow.booking_id) == []
        stored = await session.scalar(select(func.count()).select_from(TrackingEvent))
        assert stored == 1

    @pytest.mark.asyncio
    async def test_no_data(self, funded_escrow, session, clock) -> None:
        await funded_escrow()
        clock.advance(MID_CHARTER)
        summary = await _poller(session, clock, StubAisProvider({MMSI: None})).run()

        assert summary.failed == 1
        assert summary.outcomes[0].status == TrackingOutcomeStatus.NO_DATA

    @pytest.mark.asyncio
    async def test_provider_error_becomes_failure(
        self, funded_escrow, session, clock
    ) -> None:
        await funded_escrow()
        clock.advance(MID_CHARTER)
        ais = StubAisProvider({MMSI: RuntimeError("AIS upstream returned 502")})

        summary = await _poller(session, clock, ais).run()

        assert summary.failed == 1
        assert summary.outcomes[0].status == TrackingOutcomeStatus.FAILED
        assert summary.outcomes[0].reason == "AIS upstream returned 502"

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(
        self, funded_escrow, session, clock
    ) -> None:
        await funded_escrow()
        clock.advance(MID_CHARTER)
        ais = StubAisProvider({MMSI: make_position()}, delay=1.0)

        summary = await _poller(
            session, clock, ais, ais_request_timeout_seconds=0.05
        ).run()

        assert summary.failed == 1
        assert summary.outcomes[0].reason == "AIS request timed out"

    @pytest.mark.asyncio
    async def test_tick_deadline_cancels_outstanding_fetches(
        self, funded_escrow, session, clock
    ) -> None:
        await funded_escrow()
        clock.advance(MID_CHARTER)
        ais = StubAisProvider({MMSI: make_position()}, delay=1.0)

        summary = await _poller(
            session, clock, ais, poller_tick_deadline_seconds=0.05
        ).run()

        assert summary.failed == 1
        assert summary.outcomes[0].reason == "tick deadline exceeded"

    @pytest.mark.asyncio
    async def test_malformed_position_is_not_stored(
        self, funded_escrow, session, clock
    ) -> None:
        escrow = await funded_escrow()
        clock.advance(MID_CHARTER)
        ais = StubAisProvider({MMSI: make_position(latitude=123.0)})

        summary = await _poller(session, clock, ais).run()

        assert summary.failed == 1
        assert summary.outcomes[0].reason == "Malformed position"
        assert await TrackingEventRepository(session).route_for_booking(
            escrow.booking_id
        ) == []

    @pytest.mark.asyncio
    async def test_concurrent_tick_reports_busy(self, session, clock, seeded) -> None:
        ais = StubAisProvider()
        async with tracking_poller._TICK_LOCK:
            summary = await _poller(session, clock, ais).run()

        assert summary.busy is True
        assert summary.outcomes == []
