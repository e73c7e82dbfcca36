"""SQLAlchemy 2.0 ORM models for the Charter Coordinator.

Tables:
    1. users                 - Read model of the external identity provider.
    2. vessels               - Read model of the listing service.
    3. availability_windows  - Owner-declared availability slots per vessel.
    4. bookings              - Charter proposals and their negotiation state.
    5. contracts             - One contract per accepted booking.
    6. contract_signatures   - Hash + storage URL of each signature.
    7. escrow_transactions   - One escrow per fully-signed contract.
    8. escrow_events         - Append-only log of every escrow transition.
    9. tracking_events       - Append-only vessel positions.

Design decisions:
    - UUIDs as primary keys, except users which are keyed by the identity
      provider's subject string.
    - Decimal for money (no floating point rounding errors).
    - JSON columns (JSONB on PostgreSQL) for flexible terms, specs and metadata.
    - CHECK constraints on status columns and coordinate ranges.
    - A ``version`` counter on every mutable aggregate; conditional writes
      compare-and-swap on (status, version).
    - escrow_events and tracking_events are append-only.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


class TZDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite drops tzinfo on the way in, so values read back are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. users
# ---------------------------------------------------------------------------
class User(Base):
    """A user as known to the identity provider."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="UserRole enum value issued by the identity provider",
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('OWNER', 'OPERATOR', 'ADMIN', 'REGULATOR')",
            name="ck_user_valid_role",
        ),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role}>"


# ---------------------------------------------------------------------------
# 2. vessels + 3. availability_windows
# ---------------------------------------------------------------------------
class Vessel(Base):
    """A listed vessel. Listing CRUD lives elsewhere; this is a read model."""

    __tablename__ = "vessels"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    vessel_type: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    specs: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment='Free-form specs, e.g. {"mmsi": "...", "pricing": {"dailyRate": 500}}',
    )
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )

    availability: Mapped[list[AvailabilityWindow]] = relationship(
        "AvailabilityWindow",
        back_populates="vessel",
        cascade="all, delete-orphan",
        order_by="AvailabilityWindow.start_at.asc()",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'INACTIVE', 'SUSPENDED')",
            name="ck_vessel_valid_status",
        ),
        Index("idx_vessel_owner", "owner_id"),
    )

    @property
    def ais_identifier(self) -> str | None:
        """MMSI if declared, falling back to the IMO number."""
        specs = self.specs or {}
        identifier = specs.get("mmsi") or specs.get("imoNumber")
        return str(identifier) if identifier else None

    @property
    def pricing(self) -> dict:
        return dict((self.specs or {}).get("pricing") or {})

    def __repr__(self) -> str:
        return f"<Vessel id={self.id} name={self.name} status={self.status}>"


class AvailabilityWindow(Base):
    __tablename__ = "availability_windows"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    vessel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("vessels.id", ondelete="CASCADE"), nullable=False
    )
    start_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)

    vessel: Mapped[Vessel] = relationship("Vessel", back_populates="availability")

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_availability_window_order"),
        Index("idx_availability_vessel", "vessel_id"),
    )


# ---------------------------------------------------------------------------
# 4. bookings
# ---------------------------------------------------------------------------
class Booking(Base):
    """A charter proposal negotiated between a vessel owner and an operator."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Participants ---
    vessel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("vessels.id"), nullable=False
    )
    operator_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id"),
        nullable=False,
        comment="Operator who proposed the charter (owner is derived via vessel)",
    )

    # --- Charter window ---
    start_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)

    # --- Negotiated content ---
    terms: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="purpose, clauses, crew, cargo, route and the counter history",
    )
    pricing: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="Negotiated override of the vessel's listed pricing",
    )

    # --- Status (Enum-guarded) ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="REQUESTED",
        comment="Current negotiation state (guarded by BookingStateMachine)",
    )
    last_modified_by: Mapped[str] = mapped_column(String(64), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # --- Relationships ---
    vessel: Mapped[Vessel] = relationship("Vessel", lazy="joined")
    contract: Mapped[Contract | None] = relationship(
        "Contract", back_populates="booking", uselist=False, lazy="selectin"
    )
    escrow: Mapped[EscrowTransaction | None] = relationship(
        "EscrowTransaction", back_populates="booking", uselist=False, lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('REQUESTED', 'COUNTERED', 'ACCEPTED', 'CANCELLED')",
            name="ck_booking_valid_status",
        ),
        CheckConstraint("end_at > start_at", name="ck_booking_window_order"),
        Index("idx_booking_vessel_status", "vessel_id", "status"),
        Index("idx_booking_operator", "operator_id"),
        Index("idx_booking_window", "start_at", "end_at"),
    )

    @property
    def owner_id(self) -> str:
        return self.vessel.owner_id

    def __repr__(self) -> str:
        return f"<Booking id={self.id} vessel={self.vessel_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 5. contracts + 6. contract_signatures
# ---------------------------------------------------------------------------
class Contract(Base):
    """The binding agreement for an accepted booking."""

    __tablename__ = "contracts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="AWAITING_SIGNATURES"
    )
    signer_ids: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="IDs of the parties who have signed, at most owner and operator",
    )
    signed_at: Mapped[datetime | None] = mapped_column(
        TZDateTime,
        nullable=True,
        default=None,
        comment="Set once both parties have signed",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )

    booking: Mapped[Booking] = relationship(
        "Booking", back_populates="contract", lazy="joined"
    )
    signatures: Mapped[list[ContractSignature]] = relationship(
        "ContractSignature",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractSignature.signed_at.asc()",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('AWAITING_SIGNATURES', 'FULLY_SIGNED')",
            name="ck_contract_valid_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Contract id={self.id} booking={self.booking_id} status={self.status}>"


class ContractSignature(Base):
    """Where a signature image lives and the SHA-256 it must still match."""

    __tablename__ = "contract_signatures"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contract_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    signer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    signer_role: Mapped[str] = mapped_column(String(20), nullable=False)
    document_url: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    signed_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )

    contract: Mapped[Contract] = relationship("Contract", back_populates="signatures")

    __table_args__ = (
        UniqueConstraint("contract_id", "signer_id", name="uq_signature_signer"),
    )


# ---------------------------------------------------------------------------
# 7. escrow_transactions
# ---------------------------------------------------------------------------
class EscrowTransaction(Base):
    """Custody record of the charter payment."""

    __tablename__ = "escrow_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, unique=True
    )

    # --- Financials ---
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, comment="Total charged to the operator"
    )
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    owner_payout: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    config_version: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="PlatformConfig version the amounts were priced with",
    )

    # --- Status (Enum-guarded) ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="Current custody state (guarded by EscrowStateMachine)",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # --- Provider ---
    checkout_reference: Mapped[str | None] = mapped_column(
        String(80), nullable=True, default=None
    )
    provider: Mapped[str | None] = mapped_column(
        String(20), nullable=True, default=None, comment="Set on funding"
    )
    provider_reference: Mapped[str | None] = mapped_column(
        String(120), nullable=True, default=None
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )
    funded_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    booking: Mapped[Booking] = relationship(
        "Booking", back_populates="escrow", lazy="joined"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'FUNDED', 'RELEASED')",
            name="ck_escrow_valid_status",
        ),
        CheckConstraint("amount >= 0", name="ck_escrow_non_negative_amount"),
        Index("idx_escrow_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowTransaction id={self.id} status={self.status} "
            f"amount={self.amount} {self.currency}>"
        )


# ---------------------------------------------------------------------------
# 8. escrow_events (Append-Only Log)
# ---------------------------------------------------------------------------
class EscrowEvent(Base):
    """Immutable record of every escrow transition.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "escrow_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    escrow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrow_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="SYSTEM",
        comment="User ID, or the provider name for webhook-driven events",
    )
    provider: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(120), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Context such as the release reason or provider event name",
    )
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_escrow_event_escrow", "escrow_id"),
        Index("idx_escrow_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


# ---------------------------------------------------------------------------
# 9. tracking_events (Append-Only)
# ---------------------------------------------------------------------------
class TrackingEvent(Base):
    """A single vessel position. Never updated or deleted."""

    __tablename__ = "tracking_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    vessel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("vessels.id"), nullable=False
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=True
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, comment="Position timestamp reported by the source"
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    meta: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "latitude >= -90 AND latitude <= 90", name="ck_tracking_latitude"
        ),
        CheckConstraint(
            "longitude >= -180 AND longitude <= 180", name="ck_tracking_longitude"
        ),
        CheckConstraint(
            "provider IN ('MARINETRAFFIC', 'EXACTEARTH', 'MANUAL')",
            name="ck_tracking_provider",
        ),
        Index("idx_tracking_vessel_ts", "vessel_id", "recorded_at"),
        Index("idx_tracking_booking", "booking_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TrackingEvent vessel={self.vessel_id} "
            f"({self.latitude}, {self.longitude}) at {self.recorded_at}>"
        )


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
event.listen(Booking, "before_update", _set_updated_at)
event.listen(EscrowTransaction, "before_update", _set_updated_at)
