"""Domain enumerations for the Charter Coordinator.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class UserRole(enum.StrEnum):
    """Roles issued by the external identity provider."""

    OWNER = "OWNER"
    OPERATOR = "OPERATOR"
    ADMIN = "ADMIN"
    REGULATOR = "REGULATOR"


class VesselStatus(enum.StrEnum):
    """Listing status of a vessel (owned by the listing service)."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class BookingStatus(enum.StrEnum):
    """Negotiation states of a charter proposal.

    ACCEPTED and CANCELLED are terminal. See BookingStateMachine.
    """

    REQUESTED = "REQUESTED"
    COUNTERED = "COUNTERED"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"


class ContractStatus(enum.StrEnum):
    """Signature collection states of a charter contract."""

    AWAITING_SIGNATURES = "AWAITING_SIGNATURES"
    FULLY_SIGNED = "FULLY_SIGNED"


class SignerRole(enum.StrEnum):
    """Role a signer claims when signing a contract."""

    OWNER = "OWNER"
    OPERATOR = "OPERATOR"


class EscrowStatus(enum.StrEnum):
    """Funds-custody states of an escrow transaction (strictly forward)."""

    PENDING = "PENDING"
    FUNDED = "FUNDED"
    RELEASED = "RELEASED"


class EscrowEventType(enum.StrEnum):
    """Types of entries in the append-only escrow log."""

    CREATED = "CREATED"
    FUNDED = "FUNDED"
    RELEASED = "RELEASED"
    DISPUTED = "DISPUTED"


class PaymentProvider(enum.StrEnum):
    """Payment providers that can fund an escrow."""

    PAYSTACK = "PAYSTACK"
    FLUTTERWAVE = "FLUTTERWAVE"


class Currency(enum.StrEnum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    NGN = "NGN"


class AisSource(enum.StrEnum):
    """Origin of a tracking event."""

    MARINETRAFFIC = "MARINETRAFFIC"
    EXACTEARTH = "EXACTEARTH"
    MANUAL = "MANUAL"


class TrackingOutcomeStatus(enum.StrEnum):
    """Per-booking result of one tracking poller tick."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    NO_DATA = "no_data"
    FAILED = "failed"


class WebhookOutcome(enum.StrEnum):
    """What the ingestion gateway did with a verified delivery."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class VesselTrackingState(enum.StrEnum):
    """Freshness of the latest known position of a vessel."""

    ACTIVE = "ACTIVE"
    STALE = "STALE"
    OFFLINE = "OFFLINE"
