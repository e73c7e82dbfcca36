"""Tests for the tracking read model and manual entry."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from charter_coordinator.domain.enums import AisSource, VesselTrackingState
from charter_coordinator.domain.exceptions import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from charter_coordinator.services.tracking_service import TrackingService

from conftest import ADMIN_ID, BASE_TIME


@pytest.fixture
def tracking_service(session, platform, clock) -> TrackingService:
    return TrackingService(session, platform, clock=clock)


@pytest.fixture
def record(tracking_service, vessel, admin):
    async def _record(minutes_ago: int = 0, **kwargs):
        return await tracking_service.record_manual(
            admin,
            vessel_id=kwargs.pop("vessel_id", vessel.id),
            latitude=kwargs.pop("latitude", 4.4),
            longitude=kwargs.pop("longitude", 7.2),
            recorded_at=BASE_TIME - timedelta(minutes=minutes_ago),
            **kwargs,
        )

    return _record


class TestManualEntry:
    @pytest.mark.asyncio
    async def test_admin_records_position(self, record, vessel) -> None:
        event = await record()
        assert event.vessel_id == vessel.id
        assert event.provider == AisSource.MANUAL
        assert event.meta["enteredBy"] == ADMIN_ID

    @pytest.mark.asyncio
    async def test_non_admin_rejected(self, tracking_service, vessel, owner) -> None:
        with pytest.raises(AuthorizationError):
            await tracking_service.record_manual(
                owner,
                vessel_id=vessel.id,
                latitude=1.0,
                longitude=1.0,
                recorded_at=BASE_TIME,
            )

    @pytest.mark.asyncio
    async def test_out_of_range_coordinates(self, record) -> None:
        with pytest.raises(ValidationError):
            await record(latitude=-91.0)

    @pytest.mark.asyncio
    async def test_unknown_vessel(self, record) -> None:
        with pytest.raises(NotFoundError):
            await record(vessel_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unknown_booking(self, record) -> None:
        with pytest.raises(NotFoundError):
            await record(booking_id=uuid.uuid4())


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_newest_first(self, record, tracking_service, vessel) -> None:
        older = await record(minutes_ago=30)
        newer = await record(minutes_ago=5)

        events = await tracking_service.list_events(vessel_id=vessel.id)

        assert [e.id for e in events] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_since_filter(self, record, tracking_service, vessel) -> None:
        await record(minutes_ago=30)
        newer = await record(minutes_ago=5)

        events = await tracking_service.list_events(
            vessel_id=vessel.id, since=BASE_TIME - timedelta(minutes=10)
        )

        assert [e.id for e in events] == [newer.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 1001])
    async def test_limit_bounds(self, tracking_service, limit: int) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await tracking_service.list_events(limit=limit)
        assert exc_info.value.field == "limit"

    @pytest.mark.asyncio
    async def test_latest_is_active_when_fresh(
        self, record, tracking_service, vessel
    ) -> None:
        await record(minutes_ago=60)
        fresh = await record(minutes_ago=5)

        latest = await tracking_service.latest_for_vessel(vessel.id)

        assert latest.event.id == fresh.id
        assert latest.state == VesselTrackingState.ACTIVE

    @pytest.mark.asyncio
    async def test_latest_is_stale_when_old(
        self, record, tracking_service, vessel
    ) -> None:
        await record(minutes_ago=16)
        latest = await tracking_service.latest_for_vessel(vessel.id)
        assert latest.state == VesselTrackingState.STALE

    @pytest.mark.asyncio
    async def test_latest_without_data(self, tracking_service, vessel) -> None:
        with pytest.raises(NotFoundError):
            await tracking_service.latest_for_vessel(vessel.id)


class TestRouteSummary:
    @pytest.mark.asyncio
    async def test_route_distance_and_bounds(
        self, accepted_booking, record, tracking_service, operator
    ) -> None:
        booking = await accepted_booking()
        await record(minutes_ago=20, latitude=4.0, longitude=7.0, booking_id=booking.id)
        await record(minutes_ago=10, latitude=5.0, longitude=7.0, booking_id=booking.id)

        summary = await tracking_service.route_summary(booking.id, operator)

        assert len(summary.points) == 2
        assert summary.points[0].latitude == pytest.approx(4.0)
        assert summary.distance_km == pytest.approx(111.19, abs=0.01)
        assert summary.bounds.center == (4.5, 7.0)

    @pytest.mark.asyncio
    async def test_stranger_cannot_view_route(
        self, accepted_booking, tracking_service, other_operator
    ) -> None:
        booking = await accepted_booking()
        with pytest.raises(AuthorizationError):
            await tracking_service.route_summary(booking.id, other_operator)
