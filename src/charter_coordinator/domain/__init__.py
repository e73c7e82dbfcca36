"""Domain layer; pure business logic with zero framework dependencies."""

from charter_coordinator.domain.capabilities import (
    Actor,
    Capabilities,
    resolve_capabilities,
)
from charter_coordinator.domain.enums import (
    BookingStatus,
    ContractStatus,
    EscrowStatus,
    PaymentProvider,
    UserRole,
)
from charter_coordinator.domain.exceptions import (
    CharterError,
    InvalidStateTransitionError,
    NotFoundError,
)
from charter_coordinator.domain.state_machine import (
    BookingStateMachine,
    ContractStateMachine,
    EscrowStateMachine,
    fire_transition,
)
from charter_coordinator.domain.windows import CharterWindow

__all__ = [
    "Actor",
    "BookingStateMachine",
    "BookingStatus",
    "Capabilities",
    "CharterError",
    "CharterWindow",
    "ContractStateMachine",
    "ContractStatus",
    "EscrowStateMachine",
    "EscrowStatus",
    "InvalidStateTransitionError",
    "NotFoundError",
    "PaymentProvider",
    "UserRole",
    "fire_transition",
    "resolve_capabilities",
]
