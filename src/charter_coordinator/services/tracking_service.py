"""Tracking read model and manual position entry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from charter_coordinator.domain.capabilities import Actor, resolve_capabilities
from charter_coordinator.domain.enums import AisSource, VesselTrackingState
from charter_coordinator.domain.exceptions import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from charter_coordinator.domain.geo import (
    Bounds,
    route_bounds,
    route_distance_km,
    valid_coordinates,
)
from charter_coordinator.domain.windows import ensure_utc, utcnow
from charter_coordinator.infrastructure.database.orm_models import TrackingEvent
from charter_coordinator.infrastructure.database.repositories import (
    BookingRepository,
    TrackingEventRepository,
    VesselRepository,
)
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from charter_coordinator.config import PlatformConfig

logger = get_logger(__name__)

MAX_QUERY_LIMIT = 1000


@dataclass(frozen=True)
class LatestPosition:
    event: TrackingEvent
    state: VesselTrackingState


@dataclass(frozen=True)
class RouteSummary:
    booking_id: uuid.UUID
    points: list[TrackingEvent]
    distance_km: float
    bounds: Bounds


class TrackingService:
    def __init__(
        self,
        session: AsyncSession,
        platform: PlatformConfig,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._platform = platform
        self._clock = clock
        self._tracking_repo = TrackingEventRepository(session)
        self._booking_repo = BookingRepository(session)
        self._vessel_repo = VesselRepository(session)

    async def list_events(
        self,
        *,
        vessel_id: uuid.UUID | None = None,
        booking_id: uuid.UUID | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 100,
    ) -> list[TrackingEvent]:
        """Tracking events newest first, limit between 1 and 1000."""
        if not 1 <= limit <= MAX_QUERY_LIMIT:
            raise ValidationError(
                f"limit must be between 1 and {MAX_QUERY_LIMIT}", field="limit"
            )
        return await self._tracking_repo.list_filtered(
            vessel_id=vessel_id,
            booking_id=booking_id,
            since=ensure_utc(since) if since else None,
            until=ensure_utc(until) if until else None,
            limit=limit,
        )

    async def latest_for_vessel(self, vessel_id: uuid.UUID) -> LatestPosition:
        """Latest position plus whether it is fresh or stale."""
        event = await self._tracking_repo.latest_for_vessel(vessel_id)
        if event is None:
            raise NotFoundError("TrackingEvent", str(vessel_id))
        age = self._clock() - event.recorded_at
        stale_after = timedelta(minutes=self._platform.tracking_stale_after_minutes)
        state = (
            VesselTrackingState.STALE if age > stale_after else VesselTrackingState.ACTIVE
        )
        return LatestPosition(event=event, state=state)

    async def record_manual(
        self,
        actor: Actor,
        *,
        vessel_id: uuid.UUID,
        latitude: float,
        longitude: float,
        recorded_at: datetime,
        booking_id: uuid.UUID | None = None,
        meta: dict[str, Any] | None = None,
    ) -> TrackingEvent:
        """Admin-entered position, e.g. when every AIS provider is down."""
        if not actor.is_admin:
            raise AuthorizationError("Only admins can record positions manually")
        if not valid_coordinates(latitude, longitude):
            raise ValidationError(
                "Latitude must be within [-90, 90] and longitude within [-180, 180]"
            )

        vessel = await self._vessel_repo.get_by_id(vessel_id)
        if vessel is None:
            raise NotFoundError("Vessel", str(vessel_id))
        if booking_id is not None:
            booking = await self._booking_repo.get_by_id(booking_id)
            if booking is None:
                raise NotFoundError("Booking", str(booking_id))
            if booking.vessel_id != vessel.id:
                raise ValidationError("Booking does not belong to this vessel")

        event = await self._tracking_repo.append(
            TrackingEvent(
                vessel_id=vessel.id,
                booking_id=booking_id,
                latitude=latitude,
                longitude=longitude,
                recorded_at=ensure_utc(recorded_at),
                provider=AisSource.MANUAL.value,
                meta={**(meta or {}), "enteredBy": actor.id},
            )
        )
        logger.info(
            "tracking.manual_recorded",
            event_id=str(event.id),
            vessel_id=str(vessel.id),
            actor=actor.id,
        )
        return event

    async def route_summary(self, booking_id: uuid.UUID, actor: Actor) -> RouteSummary:
        """Chronological track of a charter with its distance and bounds."""
        booking = await self._booking_repo.get_by_id(booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.has_standing:
            raise AuthorizationError("Not authorized to view this route")

        points = await self._tracking_repo.route_for_booking(booking.id)
        coords = [(p.latitude, p.longitude) for p in points]
        return RouteSummary(
            booking_id=booking.id,
            points=points,
            distance_km=round(route_distance_km(coords), 3),
            bounds=route_bounds(coords),
        )
