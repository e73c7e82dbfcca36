"""Booking negotiation REST API routes.

Routes:
    POST   /api/v1/bookings               Operator proposes a charter
    GET    /api/v1/bookings               List bookings visible to the caller
    GET    /api/v1/bookings/{id}          Get booking details
    POST   /api/v1/bookings/{id}/counter  Counter-offer (owner or operator)
    POST   /api/v1/bookings/{id}/accept   Accept the counterparty's terms
    POST   /api/v1/bookings/{id}/cancel   Cancel an open negotiation
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from charter_coordinator.api.deps import get_booking_service, get_current_actor
from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.domain.enums import BookingStatus
from charter_coordinator.domain.exceptions import ValidationError
from charter_coordinator.domain.windows import CharterWindow
from charter_coordinator.logging_config import get_logger
from charter_coordinator.schemas.booking import (
    BookingResponse,
    CounterBookingRequest,
    CreateBookingRequest,
)
from charter_coordinator.services.booking_service import BookingService

router = APIRouter(prefix="/api/v1/bookings", tags=["Bookings"])
logger = get_logger(__name__)


@router.post(
    "",
    response_model=BookingResponse,
    status_code=201,
    summary="Propose a charter",
)
async def create_booking(
    request: CreateBookingRequest,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Create a REQUESTED booking for a vessel."""
    booking = await svc.propose(
        vessel_id=request.vessel_id,
        actor=actor,
        window=CharterWindow(request.start, request.end),
        terms=request.terms.to_storage(),
    )
    return BookingResponse.model_validate(booking)


@router.get(
    "",
    response_model=list[BookingResponse],
    summary="List bookings",
)
async def list_bookings(
    status: BookingStatus | None = None,
    vessel_id: uuid.UUID | None = None,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> list[BookingResponse]:
    """Operators see their own bookings, owners those on their vessels."""
    bookings = await svc.list_for_actor(actor, status=status, vessel_id=vessel_id)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get booking details",
)
async def get_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await svc.get_booking(booking_id, actor)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/counter",
    response_model=BookingResponse,
    summary="Counter-offer",
)
async def counter_booking(
    booking_id: uuid.UUID,
    request: CounterBookingRequest,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Revise dates, terms or pricing. The note explaining the change is mandatory."""
    if (request.start is None) != (request.end is None):
        raise ValidationError("start and end must be changed together", field="end")
    window = (
        CharterWindow(request.start, request.end)
        if request.start is not None and request.end is not None
        else None
    )
    booking = await svc.counter(
        booking_id,
        actor,
        note=request.counter_note,
        window=window,
        terms=request.terms.to_storage() if request.terms else None,
        pricing=request.pricing.to_storage() if request.pricing else None,
    )
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/accept",
    response_model=BookingResponse,
    summary="Accept the latest terms",
)
async def accept_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Accept the counterparty's latest revision. Issues the contract."""
    booking = await svc.accept(booking_id, actor)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
)
async def cancel_booking(
    booking_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await svc.cancel(booking_id, actor)
    return BookingResponse.model_validate(booking)
