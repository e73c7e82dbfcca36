"""Contract Signature Coordinator.

Collects the owner's and the operator's signatures on the contract of an
accepted booking. Signature images go to the DocumentStore collaborator; only
their URL and SHA-256 are kept here. When the second party signs, the
contract is sealed and the escrow for the booking is opened, exactly once.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from charter_coordinator.domain.capabilities import Actor, resolve_capabilities
from charter_coordinator.domain.enums import ContractStatus, SignerRole, UserRole
from charter_coordinator.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RoleMismatchError,
    StateError,
    ValidationError,
)
from charter_coordinator.domain.state_machine import (
    ContractStateMachine,
    allowed_from,
    fire_transition,
)
from charter_coordinator.domain.windows import utcnow
from charter_coordinator.infrastructure.database.orm_models import (
    Contract,
    ContractSignature,
)
from charter_coordinator.infrastructure.database.repositories import (
    ContractRepository,
    atomic_transition,
)
from charter_coordinator.infrastructure.documents import sha256_hex
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from charter_coordinator.config import PlatformConfig
    from charter_coordinator.domain.collaborators import DocumentStore
    from charter_coordinator.infrastructure.database.orm_models import Booking
    from charter_coordinator.services.escrow_service import EscrowService

logger = get_logger(__name__)


class ContractService:
    """Manages contract issuance and signature collection."""

    def __init__(
        self,
        session: AsyncSession,
        platform: PlatformConfig,
        *,
        documents: DocumentStore,
        escrow_service: EscrowService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._platform = platform
        self._documents = documents
        self._escrow_service = escrow_service
        self._clock = clock
        self._contract_repo = ContractRepository(session)

    async def issue_for_booking(self, booking: Booking) -> Contract:
        """Create the AWAITING_SIGNATURES contract for an accepted booking (idempotent)."""
        existing = await self._contract_repo.get_by_booking(booking.id)
        if existing is not None:
            return existing

        contract = Contract(
            booking=booking,
            status=ContractStatus.AWAITING_SIGNATURES.value,
            signer_ids=[],
        )
        contract = await self._contract_repo.create(contract)
        logger.info(
            "contract.issued", contract_id=str(contract.id), booking_id=str(booking.id)
        )
        return contract

    async def sign(
        self,
        contract_id: uuid.UUID,
        actor: Actor,
        signature_blob: bytes,
        asserted_role: SignerRole | str,
    ) -> Contract:
        """Record one party's signature.

        Checks run in order: standing, asserted role, contract state,
        duplicate signer. The signature image is persisted before any state
        change, so an unavailable document store leaves the contract untouched.
        """
        contract = await self._get_contract_or_raise(contract_id)
        booking = contract.booking
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.is_party:
            raise AuthorizationError("Only the vessel owner or operator can sign")

        actual_role = SignerRole.OWNER if caps.is_owner else SignerRole.OPERATOR
        try:
            asserted = SignerRole(asserted_role)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid signer role: {asserted_role}", field="signer_role"
            ) from exc
        if asserted != actual_role:
            raise RoleMismatchError(asserted.value, actual_role.value)

        if contract.status == ContractStatus.FULLY_SIGNED.value:
            raise StateError(
                "Contract is already fully signed", current_state=contract.status
            )
        if actor.id in contract.signer_ids:
            raise ConflictError("You have already signed this contract")
        if not signature_blob:
            raise ValidationError("Signature image is empty", field="signature")

        stored = await self._documents.persist(
            signature_blob, f"contract-{contract.id}-{actual_role.value.lower()}.png"
        )

        signer_ids = [*contract.signer_ids, actor.id]
        fully_signed = {booking.owner_id, booking.operator_id} <= set(signer_ids)
        event_name = "complete_signatures" if fully_signed else "add_signature"
        new_status = fire_transition(ContractStateMachine, contract.status, event_name)

        now = self._clock()
        updates: dict = {"signer_ids": signer_ids}
        if fully_signed:
            updates["signed_at"] = now
        result = await atomic_transition(
            self._session,
            Contract,
            contract.id,
            allowed_from=allowed_from(ContractStateMachine, event_name),
            to_status=new_status,
            expected_version=contract.version,
            updates=updates,
        )
        if not result.updated:
            await self._session.refresh(contract)
            raise StateError(
                "Contract changed while signing; reload and retry",
                current_state=contract.status,
            )

        await self._contract_repo.add_signature(
            ContractSignature(
                contract_id=contract.id,
                signer_id=actor.id,
                signer_role=actual_role.value,
                document_url=stored.url,
                content_hash=stored.content_hash,
                signed_at=now,
            )
        )
        await self._session.refresh(contract)

        logger.info(
            "contract.signed",
            contract_id=str(contract.id),
            signer=actor.id,
            role=actual_role.value,
            fully_signed=fully_signed,
        )

        if fully_signed:
            escrow = await self._escrow_service.open_for_booking(booking, actor.id)
            logger.info(
                "contract.fully_signed",
                contract_id=str(contract.id),
                escrow_id=str(escrow.id),
            )
        return contract

    async def verify_signature(
        self,
        contract_id: uuid.UUID,
        signer_id: str,
        blob: bytes,
        actor: Actor | None = None,
    ) -> bool:
        """Check a presented signature image against the stored hash."""
        contract = await self._get_contract_or_raise(contract_id)
        if actor is not None:
            self._require_standing(contract, actor)

        signature = await self._contract_repo.get_signature(contract.id, signer_id)
        if signature is None:
            raise NotFoundError("Signature", f"{contract_id}/{signer_id}")

        matches = hmac.compare_digest(sha256_hex(blob), signature.content_hash)
        logger.info(
            "contract.signature_verified",
            contract_id=str(contract.id),
            signer=signer_id,
            matches=matches,
        )
        return matches

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    async def get_contract(self, contract_id: uuid.UUID, actor: Actor) -> Contract:
        contract = await self._get_contract_or_raise(contract_id)
        self._require_standing(contract, actor)
        return contract

    async def list_for_actor(self, actor: Actor) -> list[Contract]:
        if actor.role == UserRole.OPERATOR:
            return await self._contract_repo.list_filtered(operator_id=actor.id)
        if actor.role == UserRole.OWNER:
            return await self._contract_repo.list_filtered(owner_id=actor.id)
        if actor.is_admin:
            return await self._contract_repo.list_filtered()
        raise AuthorizationError("Not authorized to list contracts")

    async def _get_contract_or_raise(self, contract_id: uuid.UUID) -> Contract:
        contract = await self._contract_repo.get_by_id(contract_id)
        if contract is None:
            raise NotFoundError("Contract", str(contract_id))
        return contract

    @staticmethod
    def _require_standing(contract: Contract, actor: Actor) -> None:
        caps = resolve_capabilities(
            actor,
            owner_id=contract.booking.owner_id,
            operator_id=contract.booking.operator_id,
        )
        if not caps.has_standing:
            raise AuthorizationError("Not authorized to view this contract")
