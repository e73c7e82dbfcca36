"""Escrow Ledger; custody of charter payments.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Repositories (data access, conditional writes)
    - Escrow log (append-only audit trail)

Lifecycle: PENDING -> FUNDED -> RELEASED, strictly forward. Funding is driven
by payment provider webhooks; release by a party once the charter window has
ended (or by an admin at any time). The ledger only authorizes release; the
actual payout happens outside this service.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from charter_coordinator.domain.capabilities import Actor, resolve_capabilities
from charter_coordinator.domain.enums import (
    EscrowEventType,
    EscrowStatus,
    PaymentProvider,
    UserRole,
)
from charter_coordinator.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    EarlyReleaseError,
    EscrowNotYetVisibleError,
    NotFoundError,
    StateError,
    ValidationError,
)
from charter_coordinator.domain.provider_protocol import CheckoutRequest
from charter_coordinator.domain.state_machine import (
    EscrowStateMachine,
    allowed_from,
    fire_transition,
)
from charter_coordinator.domain.windows import CharterWindow, utcnow
from charter_coordinator.infrastructure.database.orm_models import (
    Booking,
    EscrowEvent,
    EscrowTransaction,
)
from charter_coordinator.infrastructure.database.repositories import (
    EscrowEventRepository,
    EscrowRepository,
    UserRepository,
    atomic_transition,
)
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from charter_coordinator.config import PlatformConfig
    from charter_coordinator.domain.provider_protocol import PaymentConfirmed
    from charter_coordinator.providers import ProviderRegistry

logger = get_logger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class EscrowQuote:
    amount: Decimal
    platform_fee: Decimal
    owner_payout: Decimal
    currency: str
    days: int


def quote_charter(booking: Booking, platform: PlatformConfig) -> EscrowQuote:
    """Price a booking: daily rate x charter days + security deposit.

    Negotiated pricing on the booking wins over the vessel's listed pricing.
    Partial days round up.
    """
    pricing = booking.pricing or booking.vessel.pricing
    daily_rate = Decimal(str(pricing.get("dailyRate") or 0))
    deposit = Decimal(str(pricing.get("securityDeposit") or 0))
    currency = pricing.get("currency") or platform.default_currency

    days = CharterWindow(booking.start_at, booking.end_at).charter_days
    amount = (daily_rate * days + deposit).quantize(CENTS, rounding=ROUND_HALF_UP)
    fee = (amount * platform.platform_fee_percent / Decimal(100)).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )
    return EscrowQuote(
        amount=amount,
        platform_fee=fee,
        owner_payout=amount - fee,
        currency=currency,
        days=days,
    )


def generate_checkout_reference(booking_id: uuid.UUID, now: datetime) -> str:
    """``BF-<booking prefix>-<epoch ms>-<random>``, upper-cased."""
    millis = int(now.timestamp() * 1000)
    return f"BF-{str(booking_id)[:8]}-{millis}-{secrets.token_hex(3)}".upper()


class EscrowService:
    """Manages the escrow transaction lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        platform: PlatformConfig,
        *,
        providers: ProviderRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._platform = platform
        self._providers = providers
        self._clock = clock
        self._escrow_repo = EscrowRepository(session)
        self._event_repo = EscrowEventRepository(session)
        self._user_repo = UserRepository(session)

    # ------------------------------------------------------------------
    # Opening (side effect of a fully-signed contract)
    # ------------------------------------------------------------------

    async def open_for_booking(
        self, booking: Booking, actor_id: str = "SYSTEM"
    ) -> EscrowTransaction:
        """Open the PENDING escrow for a booking. A second call returns the existing row."""
        existing = await self._escrow_repo.get_by_booking(booking.id)
        if existing is not None:
            logger.info(
                "escrow.open_noop",
                escrow_id=str(existing.id),
                booking_id=str(booking.id),
            )
            return existing

        quote = quote_charter(booking, self._platform)
        escrow = EscrowTransaction(
            booking=booking,
            amount=quote.amount,
            platform_fee=quote.platform_fee,
            owner_payout=quote.owner_payout,
            currency=quote.currency,
            config_version=self._platform.version,
            status=EscrowStatus.PENDING.value,
            checkout_reference=generate_checkout_reference(booking.id, self._clock()),
        )
        escrow = await self._escrow_repo.create(escrow)

        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EscrowEventType.CREATED,
            old_status=None,
            new_status=EscrowStatus.PENDING,
            actor=actor_id,
            reference=escrow.checkout_reference,
            metadata={
                "days": quote.days,
                "platform_fee_percent": str(self._platform.platform_fee_percent),
                "config_version": self._platform.version,
            },
        )

        logger.info(
            "escrow.opened",
            escrow_id=str(escrow.id),
            booking_id=str(booking.id),
            amount=str(quote.amount),
            currency=quote.currency,
        )
        return escrow

    # ------------------------------------------------------------------
    # Funding (webhook-driven, idempotent)
    # ------------------------------------------------------------------

    async def confirm_payment(
        self, confirmed: PaymentConfirmed
    ) -> tuple[EscrowTransaction, bool]:
        """Apply a provider payment confirmation.

        Returns:
            The escrow and whether this call moved it to FUNDED. Replays of an
            already-applied confirmation return ``False`` and write nothing.

        Raises:
            EscrowNotYetVisibleError: The escrow does not exist (yet).
        """
        escrow = await self._escrow_repo.get_by_id(confirmed.escrow_id)
        if escrow is None:
            logger.warning(
                "escrow.not_yet_visible", escrow_id=str(confirmed.escrow_id)
            )
            raise EscrowNotYetVisibleError(str(confirmed.escrow_id))

        if escrow.status != EscrowStatus.PENDING.value:
            logger.info(
                "escrow.funding_duplicate",
                escrow_id=str(escrow.id),
                status=escrow.status,
                provider=confirmed.provider.value,
            )
            return escrow, False

        new_status = fire_transition(
            EscrowStateMachine, escrow.status, "payment_confirmed"
        )
        now = self._clock()
        result = await atomic_transition(
            self._session,
            EscrowTransaction,
            escrow.id,
            allowed_from=allowed_from(EscrowStateMachine, "payment_confirmed"),
            to_status=new_status,
            updates={
                "provider": confirmed.provider.value,
                "provider_reference": confirmed.provider_reference,
                "funded_at": now,
                "updated_at": now,
            },
        )
        await self._session.refresh(escrow)
        if not result.updated:
            # a concurrent delivery got there first
            logger.info("escrow.funding_race_lost", escrow_id=str(escrow.id))
            return escrow, False

        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EscrowEventType.FUNDED,
            old_status=EscrowStatus.PENDING,
            new_status=EscrowStatus.FUNDED,
            actor=confirmed.provider.value,
            provider=confirmed.provider.value,
            reference=confirmed.provider_reference,
            metadata={"event": confirmed.event_name, "timestamp": now.isoformat()},
        )

        logger.info(
            "escrow.funded",
            escrow_id=str(escrow.id),
            provider=confirmed.provider.value,
            reference=confirmed.provider_reference,
        )
        return escrow, True

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    async def release(
        self, escrow_id: uuid.UUID, actor: Actor, reason: str
    ) -> EscrowTransaction:
        """Authorize payout of a FUNDED escrow.

        Parties may release once the charter window has ended; admins may
        release at any time, including disputed escrows.
        """
        self._require_reason(reason)
        escrow = await self._get_escrow_or_raise(escrow_id)
        booking = escrow.booking
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.has_standing:
            raise AuthorizationError("Not authorized to release this escrow")

        if escrow.status != EscrowStatus.FUNDED.value:
            raise StateError(
                f"Escrow must be FUNDED to release (current: {escrow.status})",
                current_state=escrow.status,
            )
        if escrow.disputed_at is not None and not caps.is_admin:
            raise StateError(
                "Escrow is under dispute; only an admin can release it",
                current_state=escrow.status,
            )

        now = self._clock()
        early = now < booking.end_at
        if early and not caps.is_admin:
            raise EarlyReleaseError(str(escrow.id))

        new_status = fire_transition(EscrowStateMachine, escrow.status, "funds_released")
        result = await atomic_transition(
            self._session,
            EscrowTransaction,
            escrow.id,
            allowed_from=allowed_from(EscrowStateMachine, "funds_released"),
            to_status=new_status,
            expected_version=escrow.version,
            updates={"released_at": now, "updated_at": now},
        )
        await self._session.refresh(escrow)
        if not result.updated:
            raise StateError(
                "Escrow changed while releasing; reload and retry",
                current_state=escrow.status,
            )

        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EscrowEventType.RELEASED,
            old_status=EscrowStatus.FUNDED,
            new_status=EscrowStatus.RELEASED,
            actor=actor.id,
            metadata={
                "reason": reason.strip(),
                "early_release": early,
                "role": actor.role.value,
            },
        )

        logger.info(
            "escrow.released",
            escrow_id=str(escrow.id),
            actor=actor.id,
            early_release=early,
        )
        return escrow

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def raise_dispute(
        self, escrow_id: uuid.UUID, actor: Actor, reason: str
    ) -> EscrowTransaction:
        """Flag a FUNDED escrow as disputed. Only an admin can release it afterwards."""
        self._require_reason(reason)
        escrow = await self._get_escrow_or_raise(escrow_id)
        booking = escrow.booking
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.has_standing:
            raise AuthorizationError("Not authorized to dispute this escrow")
        if escrow.status != EscrowStatus.FUNDED.value:
            raise StateError(
                f"Only FUNDED escrows can be disputed (current: {escrow.status})",
                current_state=escrow.status,
            )
        if escrow.disputed_at is not None:
            raise ConflictError(f"Escrow {escrow.id} is already under dispute")

        now = self._clock()
        result = await atomic_transition(
            self._session,
            EscrowTransaction,
            escrow.id,
            allowed_from=[EscrowStatus.FUNDED.value],
            expected_version=escrow.version,
            updates={"disputed_at": now, "updated_at": now},
        )
        await self._session.refresh(escrow)
        if not result.updated:
            raise StateError(
                "Escrow changed while raising dispute; reload and retry",
                current_state=escrow.status,
            )

        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EscrowEventType.DISPUTED,
            old_status=EscrowStatus.FUNDED,
            new_status=EscrowStatus.FUNDED,
            actor=actor.id,
            metadata={"reason": reason.strip()},
        )
        logger.warning("escrow.disputed", escrow_id=str(escrow.id), actor=actor.id)
        return escrow

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def initiate_checkout(
        self,
        escrow_id: uuid.UUID,
        actor: Actor,
        provider: PaymentProvider | str,
    ) -> dict[str, Any]:
        """Build the provider checkout payload for the chartering operator."""
        if self._providers is None:
            raise ValidationError("No payment providers are configured")

        escrow = await self._get_escrow_or_raise(escrow_id)
        booking = escrow.booking
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if actor.role != UserRole.OPERATOR or not caps.is_operator:
            raise AuthorizationError("Only the chartering operator can pay for this booking")
        if escrow.status != EscrowStatus.PENDING.value:
            raise StateError(
                f"Escrow is already {escrow.status}", current_state=escrow.status
            )

        adapter = self._providers.get(provider)
        user = await self._user_repo.get_by_id(actor.id)
        email = user.email if user is not None else ""
        payload = adapter.build_checkout(
            CheckoutRequest(
                escrow_id=str(escrow.id),
                booking_id=str(booking.id),
                user_id=actor.id,
                email=email,
                amount=escrow.amount,
                currency=escrow.currency,
                reference=escrow.checkout_reference or "",
                callback_url="",
            )
        )

        logger.info(
            "escrow.checkout_initiated",
            escrow_id=str(escrow.id),
            provider=adapter.provider.value,
        )
        return {
            "escrow_id": str(escrow.id),
            "provider": adapter.provider.value,
            "reference": escrow.checkout_reference,
            "amount": str(escrow.amount),
            "currency": escrow.currency,
            "payload": payload,
        }

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    async def get_escrow(self, escrow_id: uuid.UUID, actor: Actor) -> EscrowTransaction:
        escrow = await self._get_escrow_or_raise(escrow_id)
        self._require_standing(escrow, actor)
        return escrow

    async def get_events(self, escrow_id: uuid.UUID, actor: Actor) -> list[EscrowEvent]:
        escrow = await self.get_escrow(escrow_id, actor)
        return await self._event_repo.get_by_escrow(escrow.id)

    async def list_for_actor(
        self, actor: Actor, booking_id: uuid.UUID | None = None
    ) -> list[EscrowTransaction]:
        if actor.role == UserRole.OPERATOR:
            return await self._escrow_repo.list_filtered(
                operator_id=actor.id, booking_id=booking_id
            )
        if actor.role == UserRole.OWNER:
            return await self._escrow_repo.list_filtered(
                owner_id=actor.id, booking_id=booking_id
            )
        if actor.is_admin:
            return await self._escrow_repo.list_filtered(booking_id=booking_id)
        raise AuthorizationError("Not authorized to list escrow transactions")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_escrow_or_raise(self, escrow_id: uuid.UUID) -> EscrowTransaction:
        escrow = await self._escrow_repo.get_by_id(escrow_id)
        if escrow is None:
            raise NotFoundError("Escrow", str(escrow_id))
        return escrow

    def _require_reason(self, reason: str) -> None:
        minimum = self._platform.min_release_reason_length
        if len((reason or "").strip()) < minimum:
            raise ValidationError(
                f"Please provide a reason (min {minimum} characters)", field="reason"
            )

    @staticmethod
    def _require_standing(escrow: EscrowTransaction, actor: Actor) -> None:
        booking = escrow.booking
        caps = resolve_capabilities(
            actor, owner_id=booking.owner_id, operator_id=booking.operator_id
        )
        if not caps.has_standing:
            raise AuthorizationError("Not authorized to view this escrow")
