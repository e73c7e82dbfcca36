"""Database infrastructure; engine, ORM models, and repositories."""

from charter_coordinator.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from charter_coordinator.infrastructure.database.orm_models import (
    AvailabilityWindow,
    Base,
    Booking,
    Contract,
    ContractSignature,
    EscrowEvent,
    EscrowTransaction,
    TrackingEvent,
    User,
    Vessel,
)
from charter_coordinator.infrastructure.database.repositories import (
    BookingRepository,
    ContractRepository,
    EscrowEventRepository,
    EscrowRepository,
    TrackingEventRepository,
    UserRepository,
    VesselRepository,
    atomic_transition,
)

__all__ = [
    "AvailabilityWindow",
    "Base",
    "Booking",
    "Contract",
    "ContractSignature",
    "EscrowEvent",
    "EscrowTransaction",
    "TrackingEvent",
    "User",
    "Vessel",
    "BookingRepository",
    "ContractRepository",
    "EscrowEventRepository",
    "EscrowRepository",
    "TrackingEventRepository",
    "UserRepository",
    "VesselRepository",
    "atomic_transition",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]
