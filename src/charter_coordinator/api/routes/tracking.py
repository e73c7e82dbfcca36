"""Vessel tracking REST API routes.

Routes:
    GET    /api/v1/tracking                      Query tracking events
    POST   /api/v1/tracking                      Admin manual position
    GET    /api/v1/tracking/{vessel_id}/latest   Latest position + freshness
    GET    /api/v1/tracking/bookings/{id}/route  Charter route summary
"""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends

from charter_coordinator.api.deps import get_current_actor, get_tracking_service
from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.logging_config import get_logger
from charter_coordinator.schemas.tracking import (
    LatestPositionResponse,
    ManualTrackingRequest,
    RouteBounds,
    RouteResponse,
    TrackingEventListResponse,
    TrackingEventResponse,
)
from charter_coordinator.services.tracking_service import TrackingService

router = APIRouter(prefix="/api/v1/tracking", tags=["Tracking"])
logger = get_logger(__name__)


@router.get(
    "",
    response_model=TrackingEventListResponse,
    summary="Query tracking events",
)
async def list_tracking_events(
    vessel_id: uuid.UUID | None = None,
    booking_id: uuid.UUID | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 100,
    actor: Actor = Depends(get_current_actor),
    svc: TrackingService = Depends(get_tracking_service),
) -> TrackingEventListResponse:
    """Newest first. ``limit`` must be between 1 and 1000."""
    events = await svc.list_events(
        vessel_id=vessel_id,
        booking_id=booking_id,
        since=since,
        until=until,
        limit=limit,
    )
    return TrackingEventListResponse(
        events=[TrackingEventResponse.model_validate(e) for e in events]
    )


@router.post(
    "",
    response_model=TrackingEventResponse,
    status_code=201,
    summary="Record a position manually",
)
async def record_position(
    request: ManualTrackingRequest,
    actor: Actor = Depends(get_current_actor),
    svc: TrackingService = Depends(get_tracking_service),
) -> TrackingEventResponse:
    event = await svc.record_manual(
        actor,
        vessel_id=request.vessel_id,
        latitude=request.latitude,
        longitude=request.longitude,
        recorded_at=request.recorded_at,
        booking_id=request.booking_id,
        meta=request.meta,
    )
    return TrackingEventResponse.model_validate(event)


@router.get(
    "/{vessel_id}/latest",
    response_model=LatestPositionResponse,
    summary="Latest vessel position",
)
async def latest_position(
    vessel_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: TrackingService = Depends(get_tracking_service),
) -> LatestPositionResponse:
    latest = await svc.latest_for_vessel(vessel_id)
    return LatestPositionResponse(
        event=TrackingEventResponse.model_validate(latest.event),
        state=latest.state.value,
    )


@router.get(
    "/bookings/{booking_id}/route",
    response_model=RouteResponse,
    summary="Charter route summary",
)
async def booking_route(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: TrackingService = Depends(get_tracking_service),
) -> RouteResponse:
    summary = await svc.route_summary(booking_id, actor)
    bounds = summary.bounds
    center_lat, center_lng = bounds.center
    return RouteResponse(
        booking_id=summary.booking_id,
        distance_km=summary.distance_km,
        point_count=len(summary.points),
        bounds=RouteBounds(
            min_lat=bounds.min_lat,
            max_lat=bounds.max_lat,
            min_lng=bounds.min_lng,
            max_lng=bounds.max_lng,
            center_lat=center_lat,
            center_lng=center_lng,
        ),
        points=[TrackingEventResponse.model_validate(p) for p in summary.points],
    )
