"""Pydantic schemas for the Contracts API."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from charter_coordinator.domain.enums import SignerRole


class SignContractRequest(BaseModel):
    """Request body for signing a contract."""

    signature_image: str = Field(
        ...,
        min_length=1,
        description="Base64 signature image, optionally as a data: URL",
    )
    signer_role: SignerRole = Field(..., description="Role the signer claims")


class VerifySignatureRequest(BaseModel):
    signer_id: str
    signature_image: str = Field(..., min_length=1)


class VerifySignatureResponse(BaseModel):
    contract_id: uuid.UUID
    signer_id: str
    matches: bool


class SignatureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    signer_id: str
    signer_role: str
    document_url: str
    content_hash: str
    signed_at: datetime


class ContractResponse(BaseModel):
    """Response schema for a contract and the signatures collected so far."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    status: str
    signer_ids: list[str]
    signed_at: datetime | None
    version: int
    created_at: datetime
    signatures: list[SignatureResponse] = []
