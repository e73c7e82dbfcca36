"""MCP Tool definitions for the Charter Coordinator.

These tools expose read models over the Model Context Protocol for internal
tooling (ops dashboards, support assistants). They never mutate state.

Tools:
    - booking_status: Negotiation state of a booking and its contract
    - escrow_status: Escrow state, amounts and audit trail length
    - latest_vessel_position: Most recent tracked position of a vessel

The MCP server is mounted into FastAPI at /mcp via app.mount(), behind
SharedSecretGuard: every request needs ``Authorization: Bearer <MCP_SECRET>``
and an unset MCP_SECRET rejects all callers.
Each tool manages its own database session (no FastAPI Depends available).
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from mcp.server.fastmcp import FastMCP
from sqlalchemy.ext.asyncio import AsyncSession

from charter_coordinator.config import get_platform_config
from charter_coordinator.domain.enums import VesselTrackingState
from charter_coordinator.domain.state_machine import (
    BookingStateMachine,
    EscrowStateMachine,
)
from charter_coordinator.domain.windows import utcnow
from charter_coordinator.infrastructure.database.engine import get_session_factory
from charter_coordinator.infrastructure.database.repositories import (
    BookingRepository,
    EscrowEventRepository,
    EscrowRepository,
    TrackingEventRepository,
)
from charter_coordinator.logging_config import get_logger

logger = get_logger(__name__)

# Initialize the MCP server
# This will be mounted into the FastAPI app in main.py
mcp = FastMCP(
    "Charter Coordinator",
    json_response=True,
)


def _get_session() -> AsyncSession:
    """Create a database session for MCP tool context (not in FastAPI request)."""
    factory = get_session_factory()
    return factory()


@mcp.tool()
async def booking_status(booking_id: str) -> dict:
    """Check the negotiation status of a booking.

    Args:
        booking_id: UUID of the booking.

    Returns:
        Booking status, whose turn it is, allowed next actions and contract state.
    """
    try:
        async with _get_session() as session:
            booking = await BookingRepository(session).get_by_id(uuid.UUID(booking_id))
            if booking is None:
                return {"error": f"Booking not found: {booking_id}"}

            contract = booking.contract
            return {
                "booking_id": str(booking.id),
                "vessel_id": str(booking.vessel_id),
                "status": booking.status,
                "last_modified_by": booking.last_modified_by,
                "start": booking.start_at.isoformat(),
                "end": booking.end_at.isoformat(),
                "allowed_actions": BookingStateMachine(booking.status).get_allowed_events(),
                "revisions": len((booking.terms or {}).get("history") or []),
                "contract": (
                    {
                        "contract_id": str(contract.id),
                        "status": contract.status,
                        "signers": list(contract.signer_ids or []),
                    }
                    if contract is not None
                    else None
                ),
            }
    except Exception as exc:
        logger.exception("mcp.booking_status.error")
        return {"error": str(exc)}


@mcp.tool()
async def escrow_status(escrow_id: str) -> dict:
    """Check the state of an escrow transaction.

    Args:
        escrow_id: UUID of the escrow transaction.

    Returns:
        Status, amounts, dispute flag and number of audit log entries.
    """
    try:
        async with _get_session() as session:
            escrow = await EscrowRepository(session).get_by_id(uuid.UUID(escrow_id))
            if escrow is None:
                return {"error": f"Escrow not found: {escrow_id}"}
            events = await EscrowEventRepository(session).get_by_escrow(escrow.id)

            return {
                "escrow_id": str(escrow.id),
                "booking_id": str(escrow.booking_id),
                "status": escrow.status,
                "amount": str(escrow.amount),
                "platform_fee": str(escrow.platform_fee),
                "owner_payout": str(escrow.owner_payout),
                "currency": escrow.currency,
                "disputed": escrow.disputed_at is not None,
                "allowed_actions": EscrowStateMachine(escrow.status).get_allowed_events(),
                "event_count": len(events),
            }
    except Exception as exc:
        logger.exception("mcp.escrow_status.error")
        return {"error": str(exc)}


@mcp.tool()
async def latest_vessel_position(vessel_id: str) -> dict:
    """Get the most recent tracked position of a vessel.

    Args:
        vessel_id: UUID of the vessel.

    Returns:
        Coordinates, timestamp, provider and whether the fix is stale.
    """
    try:
        async with _get_session() as session:
            event = await TrackingEventRepository(session).latest_for_vessel(
                uuid.UUID(vessel_id)
            )
            if event is None:
                return {"error": f"No tracking data for vessel {vessel_id}"}

            stale_after = timedelta(
                minutes=get_platform_config().tracking_stale_after_minutes
            )
            state = (
                VesselTrackingState.STALE
                if utcnow() - event.recorded_at > stale_after
                else VesselTrackingState.ACTIVE
            )
            return {
                "vessel_id": str(event.vessel_id),
                "booking_id": str(event.booking_id) if event.booking_id else None,
                "latitude": event.latitude,
                "longitude": event.longitude,
                "recorded_at": event.recorded_at.isoformat(),
                "provider": event.provider,
                "state": state.value,
            }
    except Exception as exc:
        logger.exception("mcp.latest_vessel_position.error")
        return {"error": str(exc)}
