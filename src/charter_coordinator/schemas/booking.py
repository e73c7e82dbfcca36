"""Pydantic schemas for the Bookings API.

Terms and pricing travel in camelCase on the wire, matching how they are
stored on the booking, while the envelope fields stay snake_case.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from charter_coordinator.domain.enums import Currency

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BookingTerms(_CamelModel):
    """Charter terms proposed by the operator."""

    purpose: str = Field(..., max_length=2000, examples=["Offshore crew transfer to rig"])
    custom_clauses: str | None = Field(default=None, max_length=5000)
    special_requirements: str | None = Field(default=None, max_length=2000)
    estimated_crew: int | None = Field(default=None, ge=0)
    cargo_type: str | None = Field(default=None, max_length=200)
    route: str | None = Field(default=None, max_length=500)


class BookingTermsPatch(_CamelModel):
    """Partial terms; only the fields present are changed."""

    purpose: str | None = Field(default=None, max_length=2000)
    custom_clauses: str | None = Field(default=None, max_length=5000)
    special_requirements: str | None = Field(default=None, max_length=2000)
    estimated_crew: int | None = Field(default=None, ge=0)
    cargo_type: str | None = Field(default=None, max_length=200)
    route: str | None = Field(default=None, max_length=500)


class PricingOverride(_CamelModel):
    daily_rate: Decimal = Field(..., ge=1)
    currency: Currency = Currency.NGN
    security_deposit: Decimal = Field(default=Decimal("0"), ge=0)


class CreateBookingRequest(BaseModel):
    """Request body for proposing a charter."""

    vessel_id: uuid.UUID
    start: datetime = Field(..., description="Charter start (UTC)")
    end: datetime = Field(..., description="Charter end (UTC), after start")
    terms: BookingTerms


class CounterBookingRequest(BaseModel):
    """Request body for a counter-offer. At least the note is required."""

    counter_note: str = Field(..., max_length=2000, alias="counterNote")
    start: datetime | None = None
    end: datetime | None = None
    terms: BookingTermsPatch | None = None
    pricing: PricingOverride | None = None

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    vessel_id: uuid.UUID
    operator_id: str
    owner_id: str
    start_at: datetime
    end_at: datetime
    terms: dict[str, Any]
    pricing: dict[str, Any] | None
    status: str
    last_modified_by: str
    version: int
    created_at: datetime
    updated_at: datetime
