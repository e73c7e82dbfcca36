"""Pydantic schemas for the Escrow and payment webhook APIs.

These schemas define the request/response shapes for the REST API and
MCP tools. They are separate from the ORM models to maintain clean
boundaries between the API and database layers.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from charter_coordinator.domain.enums import PaymentProvider

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ReleaseEscrowRequest(BaseModel):
    """Request body for authorizing payout of a funded escrow."""

    reason: str = Field(
        ...,
        max_length=2000,
        description="Why the funds are being released",
        examples=["Charter completed without incident"],
    )


class RaiseDisputeRequest(BaseModel):
    """Request body for raising a dispute against a funded escrow."""

    reason: str = Field(..., max_length=2000)


class CheckoutRequestBody(BaseModel):
    provider: PaymentProvider = PaymentProvider.PAYSTACK


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class EscrowResponse(BaseModel):
    """Response schema for an escrow transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    status: str
    amount: Decimal
    platform_fee: Decimal
    owner_payout: Decimal
    currency: str
    config_version: str
    checkout_reference: str | None
    provider: str | None
    provider_reference: str | None
    funded_at: datetime | None
    released_at: datetime | None
    disputed_at: datetime | None
    created_at: datetime


class EscrowEventResponse(BaseModel):
    """Response schema for an escrow log entry."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    escrow_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    provider: str | None
    reference: str | None
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class CheckoutResponse(BaseModel):
    escrow_id: uuid.UUID
    provider: PaymentProvider
    reference: str | None
    amount: Decimal
    currency: str
    payload: dict[str, Any]


class WebhookAck(BaseModel):
    """Acknowledgement returned to the payment provider."""

    outcome: str
    provider: str
    escrow_id: uuid.UUID | None = None
