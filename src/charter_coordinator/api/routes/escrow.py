"""Escrow ledger REST API routes.

These endpoints provide the HTTP interface for inspecting escrow
transactions, starting checkout, releasing funds and raising disputes.
Funding itself only ever arrives through the payment webhook. The MCP
tools in mcp_server/tools.py read through the same service layer.

Routes:
    GET    /api/v1/escrow                List escrow transactions
    GET    /api/v1/escrow/{id}           Get escrow details
    GET    /api/v1/escrow/{id}/events    Get audit trail
    POST   /api/v1/escrow/{id}/checkout  Build a provider checkout payload
    POST   /api/v1/escrow/{id}/release   Authorize payout
    POST   /api/v1/escrow/{id}/dispute   Raise dispute
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from charter_coordinator.api.deps import get_current_actor, get_escrow_service
from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.logging_config import get_logger
from charter_coordinator.schemas.escrow import (
    CheckoutRequestBody,
    CheckoutResponse,
    EscrowEventResponse,
    EscrowResponse,
    RaiseDisputeRequest,
    ReleaseEscrowRequest,
)
from charter_coordinator.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[EscrowResponse],
    summary="List escrow transactions",
)
async def list_escrows(
    booking_id: uuid.UUID | None = None,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowResponse]:
    escrows = await svc.list_for_actor(actor, booking_id=booking_id)
    return [EscrowResponse.model_validate(e) for e in escrows]


@router.get(
    "/{escrow_id}",
    response_model=EscrowResponse,
    summary="Get escrow details",
)
async def get_escrow(
    escrow_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    escrow = await svc.get_escrow(escrow_id, actor)
    return EscrowResponse.model_validate(escrow)


@router.get(
    "/{escrow_id}/events",
    response_model=list[EscrowEventResponse],
    summary="Get escrow audit trail",
)
async def get_escrow_events(
    escrow_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowEventResponse]:
    """Return the full audit trail, oldest first."""
    events = await svc.get_events(escrow_id, actor)
    return [EscrowEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_id}/checkout",
    response_model=CheckoutResponse,
    summary="Start payment checkout",
)
async def start_checkout(
    escrow_id: uuid.UUID,
    request: CheckoutRequestBody,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> CheckoutResponse:
    """Build the payload the client hands to the chosen payment provider."""
    checkout = await svc.initiate_checkout(escrow_id, actor, request.provider)
    return CheckoutResponse.model_validate(checkout)


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_id}/release",
    response_model=EscrowResponse,
    summary="Release escrowed funds",
)
async def release_escrow(
    escrow_id: uuid.UUID,
    request: ReleaseEscrowRequest,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Release a FUNDED escrow once the charter window has ended."""
    escrow = await svc.release(escrow_id, actor, request.reason)
    return EscrowResponse.model_validate(escrow)


# ---------------------------------------------------------------------------
# Dispute
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_id}/dispute",
    response_model=EscrowResponse,
    summary="Raise a dispute",
)
async def raise_dispute(
    escrow_id: uuid.UUID,
    request: RaiseDisputeRequest,
    actor: Actor = Depends(get_current_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Flag a FUNDED escrow; afterwards only an admin can release it."""
    escrow = await svc.raise_dispute(escrow_id, actor, request.reason)
    return EscrowResponse.model_validate(escrow)
