"""Pydantic schemas for the Tracking and scheduler APIs."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TrackingEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    vessel_id: uuid.UUID
    booking_id: uuid.UUID | None
    latitude: float
    longitude: float
    recorded_at: datetime
    provider: str
    meta: dict[str, Any] | None


class TrackingEventListResponse(BaseModel):
    events: list[TrackingEventResponse]


class LatestPositionResponse(BaseModel):
    event: TrackingEventResponse
    state: str = Field(description="ACTIVE, or STALE when older than the freshness window")


class ManualTrackingRequest(BaseModel):
    """Admin-entered vessel position."""

    vessel_id: uuid.UUID
    booking_id: uuid.UUID | None = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    recorded_at: datetime
    meta: dict[str, Any] | None = None


class RouteBounds(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float
    center_lat: float
    center_lng: float


class RouteResponse(BaseModel):
    booking_id: uuid.UUID
    distance_km: float
    point_count: int
    bounds: RouteBounds
    points: list[TrackingEventResponse]


class PollOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: uuid.UUID
    vessel_id: uuid.UUID
    status: str
    reason: str | None = None
    event_id: uuid.UUID | None = None
    provider: str | None = None


class PollSummaryResponse(BaseModel):
    """Result of one tracking tick."""

    model_config = ConfigDict(from_attributes=True)

    tracked: int
    skipped: int
    failed: int
    busy: bool = False
    outcomes: list[PollOutcomeResponse] = []
