"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Every state transition goes through ``atomic_transition``: one conditional
UPDATE guarded by the allowed source statuses (and optionally the version the
caller read). A zero rowcount means someone else moved the row first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update

from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.domain.enums import (
    BookingStatus,
    EscrowStatus,
    UserRole,
)
from charter_coordinator.infrastructure.database.orm_models import (
    Booking,
    Contract,
    ContractSignature,
    EscrowEvent,
    EscrowTransaction,
    TrackingEvent,
    User,
    Vessel,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from charter_coordinator.domain.enums import EscrowEventType


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


async def atomic_transition(
    session: AsyncSession,
    model: type[Booking] | type[Contract] | type[EscrowTransaction],
    entity_id: uuid.UUID,
    *,
    allowed_from: Iterable[str],
    to_status: str | None = None,
    expected_version: int | None = None,
    updates: dict[str, Any] | None = None,
) -> TransitionResult:
    """Apply a status transition with an atomic DB guard.

        UPDATE <table>
        SET status = :to_status, version = version + 1, ...
        WHERE id = :id AND status IN (:allowed_from) [AND version = :expected]

    Notes:
    - Callers control commit/rollback.
    - The ORM instance in the session is NOT refreshed; callers that keep
      using it must ``await session.refresh(obj)``.
    """
    values: dict[str, Any] = {"version": model.version + 1}
    if to_status is not None:
        values["status"] = to_status
    if updates:
        values.update(updates)

    stmt = (
        update(model)
        .where(model.id == entity_id)
        .where(model.status.in_([str(s) for s in allowed_from]))
    )
    if expected_version is not None:
        stmt = stmt.where(model.version == expected_version)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    result = await session.execute(stmt)
    rowcount = int(result.rowcount or 0)
    return TransitionResult(updated=rowcount > 0, rowcount=rowcount)


class UserRepository:
    """Data access for the identity read model. Doubles as a UserDirectory."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: User) -> User:
        self._session.add(user)
        await self._session.flush()
        return user

    async def get_by_id(self, user_id: str) -> User | None:
        return await self._session.get(User, user_id)

    async def resolve_user(self, user_id: str) -> Actor | None:
        user = await self.get_by_id(user_id)
        if user is None:
            return None
        return Actor(id=user.id, role=UserRole(user.role))


class VesselRepository:
    """Data access for the vessel read model."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, vessel: Vessel) -> Vessel:
        self._session.add(vessel)
        await self._session.flush()
        return vessel

    async def get_by_id(self, vessel_id: uuid.UUID) -> Vessel | None:
        result = await self._session.execute(
            select(Vessel).where(Vessel.id == vessel_id)
        )
        return result.scalar_one_or_none()


class BookingRepository:
    """Data access for bookings."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, booking: Booking) -> Booking:
        """Insert a new booking."""
        self._session.add(booking)
        await self._session.flush()
        return booking

    async def get_by_id(self, booking_id: uuid.UUID) -> Booking | None:
        """Fetch a booking by its UUID (vessel eagerly loaded)."""
        result = await self._session.execute(
            select(Booking).where(Booking.id == booking_id)
        )
        return result.scalar_one_or_none()

    async def list_filtered(
        self,
        *,
        operator_id: str | None = None,
        owner_id: str | None = None,
        status: BookingStatus | None = None,
        vessel_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        """Fetch bookings, newest first, narrowed by any of the given filters."""
        stmt = select(Booking)
        if operator_id is not None:
            stmt = stmt.where(Booking.operator_id == operator_id)
        if owner_id is not None:
            stmt = stmt.join(Vessel, Vessel.id == Booking.vessel_id).where(
                Vessel.owner_id == owner_id
            )
        if status is not None:
            stmt = stmt.where(Booking.status == status.value)
        if vessel_id is not None:
            stmt = stmt.where(Booking.vessel_id == vessel_id)
        result = await self._session.execute(stmt.order_by(Booking.created_at.desc()))
        return list(result.scalars().all())

    async def accepted_overlapping(
        self,
        vessel_id: uuid.UUID,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_id: uuid.UUID | None = None,
    ) -> list[Booking]:
        """ACCEPTED bookings on the vessel whose half-open window overlaps."""
        stmt = select(Booking).where(
            Booking.vessel_id == vessel_id,
            Booking.status == BookingStatus.ACCEPTED.value,
            Booking.start_at < end_at,
            Booking.end_at > start_at,
        )
        if exclude_id is not None:
            stmt = stmt.where(Booking.id != exclude_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_trackable(self, now: datetime) -> list[Booking]:
        """ACCEPTED bookings whose window contains ``now`` and whose escrow is FUNDED."""
        result = await self._session.execute(
            select(Booking)
            .join(EscrowTransaction, EscrowTransaction.booking_id == Booking.id)
            .where(
                Booking.status == BookingStatus.ACCEPTED.value,
                Booking.start_at <= now,
                Booking.end_at >= now,
                EscrowTransaction.status == EscrowStatus.FUNDED.value,
            )
            .order_by(Booking.start_at.asc())
        )
        return list(result.scalars().all())


class ContractRepository:
    """Data access for contracts and their signatures."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, contract: Contract) -> Contract:
        self._session.add(contract)
        await self._session.flush()
        return contract

    async def get_by_id(self, contract_id: uuid.UUID) -> Contract | None:
        result = await self._session.execute(
            select(Contract).where(Contract.id == contract_id)
        )
        return result.scalar_one_or_none()

    async def get_by_booking(self, booking_id: uuid.UUID) -> Contract | None:
        result = await self._session.execute(
            select(Contract).where(Contract.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def list_filtered(
        self, *, operator_id: str | None = None, owner_id: str | None = None
    ) -> list[Contract]:
        stmt = select(Contract).join(Booking, Booking.id == Contract.booking_id)
        if operator_id is not None:
            stmt = stmt.where(Booking.operator_id == operator_id)
        if owner_id is not None:
            stmt = stmt.join(Vessel, Vessel.id == Booking.vessel_id).where(
                Vessel.owner_id == owner_id
            )
        result = await self._session.execute(stmt.order_by(Contract.created_at.desc()))
        return list(result.scalars().all())

    async def add_signature(self, signature: ContractSignature) -> ContractSignature:
        self._session.add(signature)
        await self._session.flush()
        return signature

    async def get_signature(
        self, contract_id: uuid.UUID, signer_id: str
    ) -> ContractSignature | None:
        result = await self._session.execute(
            select(ContractSignature).where(
                ContractSignature.contract_id == contract_id,
                ContractSignature.signer_id == signer_id,
            )
        )
        return result.scalar_one_or_none()


class EscrowRepository:
    """Data access for escrow transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, escrow: EscrowTransaction) -> EscrowTransaction:
        """Insert a new escrow transaction."""
        self._session.add(escrow)
        await self._session.flush()
        return escrow

    async def get_by_id(self, escrow_id: uuid.UUID) -> EscrowTransaction | None:
        """Fetch an escrow by its UUID (booking and vessel eagerly loaded)."""
        result = await self._session.execute(
            select(EscrowTransaction).where(EscrowTransaction.id == escrow_id)
        )
        return result.scalar_one_or_none()

    async def get_by_booking(self, booking_id: uuid.UUID) -> EscrowTransaction | None:
        result = await self._session.execute(
            select(EscrowTransaction).where(EscrowTransaction.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def list_filtered(
        self,
        *,
        operator_id: str | None = None,
        owner_id: str | None = None,
        booking_id: uuid.UUID | None = None,
    ) -> list[EscrowTransaction]:
        stmt = select(EscrowTransaction).join(
            Booking, Booking.id == EscrowTransaction.booking_id
        )
        if operator_id is not None:
            stmt = stmt.where(Booking.operator_id == operator_id)
        if owner_id is not None:
            stmt = stmt.join(Vessel, Vessel.id == Booking.vessel_id).where(
                Vessel.owner_id == owner_id
            )
        if booking_id is not None:
            stmt = stmt.where(EscrowTransaction.booking_id == booking_id)
        result = await self._session.execute(
            stmt.order_by(EscrowTransaction.created_at.desc())
        )
        return list(result.scalars().all())


class EscrowEventRepository:
    """Data access for the append-only escrow log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        escrow_id: uuid.UUID,
        event_type: EscrowEventType,
        old_status: EscrowStatus | None,
        new_status: EscrowStatus,
        actor: str = "SYSTEM",
        provider: str | None = None,
        reference: str | None = None,
        metadata: dict | None = None,
    ) -> EscrowEvent:
        """Append a new log entry. This is the ONLY write operation allowed."""
        evt = EscrowEvent(
            escrow_id=escrow_id,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            actor=actor,
            provider=provider,
            reference=reference,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_escrow(self, escrow_id: uuid.UUID) -> list[EscrowEvent]:
        """Fetch all entries for an escrow in chronological order."""
        result = await self._session.execute(
            select(EscrowEvent)
            .where(EscrowEvent.escrow_id == escrow_id)
            .order_by(EscrowEvent.created_at.asc())
        )
        return list(result.scalars().all())


class TrackingEventRepository:
    """Data access for the append-only tracking log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, tracking_event: TrackingEvent) -> TrackingEvent:
        self._session.add(tracking_event)
        await self._session.flush()
        return tracking_event

    async def list_filtered(
        self,
        *,
        vessel_id: uuid.UUID | None = None,
        booking_id: uuid.UUID | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 100,
    ) -> list[TrackingEvent]:
        """Newest first."""
        stmt = select(TrackingEvent)
        if vessel_id is not None:
            stmt = stmt.where(TrackingEvent.vessel_id == vessel_id)
        if booking_id is not None:
            stmt = stmt.where(TrackingEvent.booking_id == booking_id)
        if since is not None:
            stmt = stmt.where(TrackingEvent.recorded_at >= since)
        if until is not None:
            stmt = stmt.where(TrackingEvent.recorded_at <= until)
        result = await self._session.execute(
            stmt.order_by(TrackingEvent.recorded_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def latest_for_vessel(self, vessel_id: uuid.UUID) -> TrackingEvent | None:
        rows = await self.list_filtered(vessel_id=vessel_id, limit=1)
        return rows[0] if rows else None

    async def route_for_booking(self, booking_id: uuid.UUID) -> list[TrackingEvent]:
        """All positions of a booking in chronological order."""
        result = await self._session.execute(
            select(TrackingEvent)
            .where(TrackingEvent.booking_id == booking_id)
            .order_by(TrackingEvent.recorded_at.asc())
        )
        return list(result.scalars().all())
