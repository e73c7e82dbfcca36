"""Booking Negotiation Engine.

Operators propose charters; the vessel owner and the operator counter each
other until one of them accepts the other's latest revision. Either party
(or an admin) may cancel while negotiation is open. Acceptance checks the
vessel's declared availability and any already-accepted overlapping booking,
then issues the contract.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from charter_coordinator.domain.capabilities import Actor, resolve_capabilities
from charter_coordinator.domain.enums import (
    BookingStatus,
    Currency,
    UserRole,
    VesselStatus,
)
from charter_coordinator.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from charter_coordinator.domain.state_machine import (
    BookingStateMachine,
    allowed_from,
    fire_transition,
)
from charter_coordinator.domain.windows import (
    CharterWindow,
    fits_availability,
    utcnow,
)
from charter_coordinator.infrastructure.database.orm_models import Booking
from charter_coordinator.infrastructure.database.repositories import (
    BookingRepository,
    VesselRepository,
    atomic_transition,
)
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from charter_coordinator.config import PlatformConfig
    from charter_coordinator.services.contract_service import ContractService

logger = get_logger(__name__)

TERM_FIELDS = (
    "purpose",
    "customClauses",
    "specialRequirements",
    "estimatedCrew",
    "cargoType",
    "route",
)


def validate_pricing(pricing: dict[str, Any]) -> dict[str, Any]:
    """Normalize a negotiated pricing override.

    dailyRate >= 1, securityDeposit >= 0, currency one of USD/EUR/GBP/NGN.
    Amounts are stored as strings to keep Decimal precision in JSON.
    """
    try:
        daily_rate = Decimal(str(pricing["dailyRate"]))
        deposit = Decimal(str(pricing.get("securityDeposit", 0)))
    except (KeyError, InvalidOperation) as exc:
        raise ValidationError("Invalid pricing", field="pricing") from exc
    if daily_rate < 1:
        raise ValidationError("Daily rate must be at least 1", field="dailyRate")
    if deposit < 0:
        raise ValidationError(
            "Security deposit cannot be negative", field="securityDeposit"
        )
    currency = pricing.get("currency", Currency.NGN.value)
    if currency not in {c.value for c in Currency}:
        raise ValidationError(f"Unsupported currency: {currency}", field="currency")
    return {
        "dailyRate": str(daily_rate),
        "currency": currency,
        "securityDeposit": str(deposit),
    }


class BookingService:
    """Manages charter negotiation."""

    def __init__(
        self,
        session: AsyncSession,
        platform: PlatformConfig,
        *,
        contract_service: ContractService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._platform = platform
        self._contract_service = contract_service
        self._clock = clock
        self._booking_repo = BookingRepository(session)
        self._vessel_repo = VesselRepository(session)

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    async def propose(
        self,
        vessel_id: uuid.UUID,
        actor: Actor,
        window: CharterWindow,
        terms: dict[str, Any],
    ) -> Booking:
        """Create a REQUESTED booking on behalf of an operator."""
        if not self._platform.booking_enabled:
            raise ValidationError("New bookings are currently disabled")
        if actor.role != UserRole.OPERATOR:
            raise AuthorizationError("Only operators can create bookings")
        if window.start <= self._clock():
            raise ValidationError("Start date must be in the future", field="start")
        self._require_purpose(terms.get("purpose"))

        vessel = await self._vessel_repo.get_by_id(vessel_id)
        if vessel is None:
            raise NotFoundError("Vessel", str(vessel_id))
        if vessel.status != VesselStatus.ACTIVE.value:
            raise ValidationError("Vessel is not available for booking")
        if vessel.owner_id == actor.id:
            raise ValidationError("You cannot book your own vessel")

        booking = Booking(
            vessel=vessel,
            operator_id=actor.id,
            start_at=window.start,
            end_at=window.end,
            terms={**_pick_terms(terms), "history": []},
            status=BookingStatus.REQUESTED.value,
            last_modified_by=actor.id,
            version=1,
        )
        booking = await self._booking_repo.create(booking)
        await self._session.refresh(booking)

        logger.info(
            "booking.proposed",
            booking_id=str(booking.id),
            vessel_id=str(vessel.id),
            operator=actor.id,
        )
        return booking

    # ------------------------------------------------------------------
    # Counter-offer
    # ------------------------------------------------------------------

    async def counter(
        self,
        booking_id: uuid.UUID,
        actor: Actor,
        *,
        note: str,
        window: CharterWindow | None = None,
        terms: dict[str, Any] | None = None,
        pricing: dict[str, Any] | None = None,
    ) -> Booking:
        """Revise window, terms or pricing and hand the turn to the counterparty."""
        booking = await self._get_booking_or_raise(booking_id)
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.is_party:
            raise AuthorizationError(
                "Only the vessel owner or operator can counter this booking"
            )
        new_status = fire_transition(BookingStateMachine, booking.status, "counter_offer")

        minimum = self._platform.min_counter_note_length
        if len((note or "").strip()) < minimum:
            raise ValidationError(
                f"Please explain the changes (min {minimum} characters)",
                field="counterNote",
            )

        now = self._clock()
        changes: dict[str, Any] = {}
        updates: dict[str, Any] = {"last_modified_by": actor.id, "updated_at": now}

        if window is not None:
            updates["start_at"] = window.start
            updates["end_at"] = window.end
            changes["start"] = window.start.isoformat()
            changes["end"] = window.end.isoformat()

        merged_terms = dict(booking.terms or {})
        if terms:
            picked = _pick_terms(terms)
            if "purpose" in picked:
                self._require_purpose(picked["purpose"])
            merged_terms.update(picked)
            changes["terms"] = picked

        if pricing:
            normalized = validate_pricing(pricing)
            updates["pricing"] = normalized
            changes["pricing"] = normalized

        history = list(merged_terms.get("history") or [])
        history.append(
            {
                "updatedBy": actor.id,
                "updatedAt": now.isoformat(),
                "note": note.strip(),
                "changes": changes,
            }
        )
        merged_terms["history"] = history
        updates["terms"] = merged_terms

        result = await atomic_transition(
            self._session,
            Booking,
            booking.id,
            allowed_from=allowed_from(BookingStateMachine, "counter_offer"),
            to_status=new_status,
            expected_version=booking.version,
            updates=updates,
        )
        await self._session.refresh(booking)
        if not result.updated:
            raise StateError(
                "Booking changed while countering; reload and retry",
                current_state=booking.status,
            )

        logger.info(
            "booking.countered",
            booking_id=str(booking.id),
            actor=actor.id,
            changed=sorted(changes),
        )
        return booking

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    async def accept(self, booking_id: uuid.UUID, actor: Actor) -> Booking:
        """Accept the counterparty's latest revision and issue the contract."""
        booking = await self._get_booking_or_raise(booking_id)
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.is_party:
            raise AuthorizationError(
                "Only the vessel owner or operator can accept this booking"
            )
        new_status = fire_transition(BookingStateMachine, booking.status, "accept_terms")
        if booking.last_modified_by == actor.id:
            raise AuthorizationError(
                "You cannot accept your own proposal; waiting on the counterparty"
            )

        window = CharterWindow(booking.start_at, booking.end_at)
        availability = [
            CharterWindow(slot.start_at, slot.end_at)
            for slot in booking.vessel.availability
        ]
        if not fits_availability(window, availability):
            raise ConflictError("Vessel is not available for the requested dates")

        overlapping = await self._booking_repo.accepted_overlapping(
            booking.vessel_id, window.start, window.end, exclude_id=booking.id
        )
        if overlapping:
            raise ConflictError(
                f"Vessel already chartered for overlapping dates "
                f"(booking {overlapping[0].id})"
            )

        result = await atomic_transition(
            self._session,
            Booking,
            booking.id,
            allowed_from=allowed_from(BookingStateMachine, "accept_terms"),
            to_status=new_status,
            expected_version=booking.version,
            updates={"last_modified_by": actor.id, "updated_at": self._clock()},
        )
        await self._session.refresh(booking)
        if not result.updated:
            raise StateError(
                "Booking changed while accepting; reload and retry",
                current_state=booking.status,
            )

        contract = await self._contract_service.issue_for_booking(booking)
        logger.info(
            "booking.accepted",
            booking_id=str(booking.id),
            actor=actor.id,
            contract_id=str(contract.id),
        )
        return booking

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, booking_id: uuid.UUID, actor: Actor) -> Booking:
        booking = await self._get_booking_or_raise(booking_id)
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.has_standing:
            raise AuthorizationError("Not authorized to cancel this booking")
        new_status = fire_transition(
            BookingStateMachine, booking.status, "cancel_booking"
        )

        result = await atomic_transition(
            self._session,
            Booking,
            booking.id,
            allowed_from=allowed_from(BookingStateMachine, "cancel_booking"),
            to_status=new_status,
            expected_version=booking.version,
            updates={"last_modified_by": actor.id, "updated_at": self._clock()},
        )
        await self._session.refresh(booking)
        if not result.updated:
            raise StateError(
                "Booking changed while cancelling; reload and retry",
                current_state=booking.status,
            )

        logger.info("booking.cancelled", booking_id=str(booking.id), actor=actor.id)
        return booking

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: uuid.UUID, actor: Actor) -> Booking:
        booking = await self._get_booking_or_raise(booking_id)
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.has_standing:
            raise AuthorizationError("Not authorized to view this booking")
        return booking

    async def list_for_actor(
        self,
        actor: Actor,
        status: BookingStatus | None = None,
        vessel_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        if actor.role == UserRole.OPERATOR:
            return await self._booking_repo.list_filtered(
                operator_id=actor.id, status=status, vessel_id=vessel_id
            )
        if actor.role == UserRole.OWNER:
            return await self._booking_repo.list_filtered(
                owner_id=actor.id, status=status, vessel_id=vessel_id
            )
        if actor.is_admin:
            return await self._booking_repo.list_filtered(
                status=status, vessel_id=vessel_id
            )
        raise AuthorizationError("Not authorized to list bookings")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_booking_or_raise(self, booking_id: uuid.UUID) -> Booking:
        booking = await self._booking_repo.get_by_id(booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    def _require_purpose(self, purpose: Any) -> None:
        minimum = self._platform.min_purpose_length
        if len(str(purpose or "").strip()) < minimum:
            raise ValidationError(
                f"Purpose must be at least {minimum} characters", field="purpose"
            )


def _pick_terms(terms: dict[str, Any]) -> dict[str, Any]:
    return {key: terms[key] for key in TERM_FIELDS if terms.get(key) is not None}
