"""Contract signature REST API routes.

Routes:
    GET    /api/v1/contracts                         List contracts
    GET    /api/v1/contracts/{id}                    Get contract + signatures
    POST   /api/v1/contracts/{id}/sign               Sign as owner or operator
    POST   /api/v1/contracts/{id}/signatures/verify  Check a signature image
"""

from __future__ import annotations

import base64
import binascii
import uuid

from fastapi import APIRouter, Depends

from charter_coordinator.api.deps import get_contract_service, get_current_actor
from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.domain.exceptions import ValidationError
from charter_coordinator.logging_config import get_logger
from charter_coordinator.schemas.contract import (
    ContractResponse,
    SignContractRequest,
    VerifySignatureRequest,
    VerifySignatureResponse,
)
from charter_coordinator.services.contract_service import ContractService

router = APIRouter(prefix="/api/v1/contracts", tags=["Contracts"])
logger = get_logger(__name__)


def decode_signature_image(raw: str) -> bytes:
    """Decode a base64 image, accepting ``data:image/png;base64,...`` URLs."""
    encoded = raw.split(",", 1)[1] if raw.startswith("data:") and "," in raw else raw
    try:
        blob = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(
            "Signature image is not valid base64", field="signature_image"
        ) from exc
    if not blob:
        raise ValidationError("Signature image is empty", field="signature_image")
    return blob


@router.get(
    "",
    response_model=list[ContractResponse],
    summary="List contracts",
)
async def list_contracts(
    actor: Actor = Depends(get_current_actor),
    svc: ContractService = Depends(get_contract_service),
) -> list[ContractResponse]:
    contracts = await svc.list_for_actor(actor)
    return [ContractResponse.model_validate(c) for c in contracts]


@router.get(
    "/{contract_id}",
    response_model=ContractResponse,
    summary="Get contract details",
)
async def get_contract(
    contract_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: ContractService = Depends(get_contract_service),
) -> ContractResponse:
    contract = await svc.get_contract(contract_id, actor)
    return ContractResponse.model_validate(contract)


@router.post(
    "/{contract_id}/sign",
    response_model=ContractResponse,
    summary="Sign a contract",
)
async def sign_contract(
    contract_id: uuid.UUID,
    request: SignContractRequest,
    actor: Actor = Depends(get_current_actor),
    svc: ContractService = Depends(get_contract_service),
) -> ContractResponse:
    """Record the caller's signature.

    The second distinct signature completes the contract and opens the
    escrow for the booking.
    """
    blob = decode_signature_image(request.signature_image)
    contract = await svc.sign(
        contract_id,
        actor,
        signature_blob=blob,
        asserted_role=request.signer_role,
    )
    return ContractResponse.model_validate(contract)


@router.post(
    "/{contract_id}/signatures/verify",
    response_model=VerifySignatureResponse,
    summary="Verify a signature image",
)
async def verify_signature(
    contract_id: uuid.UUID,
    request: VerifySignatureRequest,
    actor: Actor = Depends(get_current_actor),
    svc: ContractService = Depends(get_contract_service),
) -> VerifySignatureResponse:
    blob = decode_signature_image(request.signature_image)
    matches = await svc.verify_signature(
        contract_id, request.signer_id, blob, actor=actor
    )
    return VerifySignatureResponse(
        contract_id=contract_id, signer_id=request.signer_id, matches=matches
    )
