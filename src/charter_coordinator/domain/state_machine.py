"""Charter lifecycle state machine guards.

Uses python-statemachine to enforce legal state transitions at the domain
level. Services consult these guards before issuing the conditional UPDATE
that actually moves a row, so an illegal transition (e.g. RELEASED -> FUNDED)
is rejected before touching the database.

Booking:
    REQUESTED   -> COUNTERED     (counter_offer)
    COUNTERED   -> COUNTERED     (counter_offer)
    REQUESTED   -> ACCEPTED      (accept_terms)
    COUNTERED   -> ACCEPTED      (accept_terms)
    REQUESTED   -> CANCELLED     (cancel_booking)
    COUNTERED   -> CANCELLED     (cancel_booking)

Contract:
    AWAITING_SIGNATURES -> AWAITING_SIGNATURES  (add_signature)
    AWAITING_SIGNATURES -> FULLY_SIGNED         (complete_signatures)

Escrow:
    PENDING -> FUNDED    (payment_confirmed)
    FUNDED  -> RELEASED  (funds_released)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from charter_coordinator.domain.exceptions import InvalidStateTransitionError


class _GuardMixin:
    """Shared construction from a persisted status string."""

    def _check_status(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}  # type: ignore[attr-defined]
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )

    @property
    def status(self) -> str:
        """Return the current state value as a string."""
        return str(self.current_state.value)  # type: ignore[attr-defined]

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [
            getattr(event, "id", None) or event.name
            for event in self.allowed_events  # type: ignore[attr-defined]
        ]


class BookingStateMachine(_GuardMixin, StateMachine):
    """Negotiation lifecycle of a booking.

    Usage:
        sm = BookingStateMachine(current_status="COUNTERED")
        sm.accept_terms()
        sm.status  # "ACCEPTED"
    """

    REQUESTED = State("REQUESTED", initial=True)
    COUNTERED = State("COUNTERED")
    ACCEPTED = State("ACCEPTED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    counter_offer = REQUESTED.to(COUNTERED) | COUNTERED.to(COUNTERED)
    accept_terms = REQUESTED.to(ACCEPTED) | COUNTERED.to(ACCEPTED)
    cancel_booking = REQUESTED.to(CANCELLED) | COUNTERED.to(CANCELLED)

    def __init__(self, current_status: str = "REQUESTED") -> None:
        self._check_status(current_status)
        super().__init__(start_value=current_status)


class ContractStateMachine(_GuardMixin, StateMachine):
    """Signature collection: the signer set only grows, then the contract is sealed."""

    AWAITING_SIGNATURES = State("AWAITING_SIGNATURES", initial=True)
    FULLY_SIGNED = State("FULLY_SIGNED", final=True)

    add_signature = AWAITING_SIGNATURES.to(AWAITING_SIGNATURES)
    complete_signatures = AWAITING_SIGNATURES.to(FULLY_SIGNED)

    def __init__(self, current_status: str = "AWAITING_SIGNATURES") -> None:
        self._check_status(current_status)
        super().__init__(start_value=current_status)


class EscrowStateMachine(_GuardMixin, StateMachine):
    """Funds custody: strictly forward, no way back from RELEASED."""

    PENDING = State("PENDING", initial=True)
    FUNDED = State("FUNDED")
    RELEASED = State("RELEASED", final=True)

    payment_confirmed = PENDING.to(FUNDED)
    funds_released = FUNDED.to(RELEASED)

    def __init__(self, current_status: str = "PENDING") -> None:
        self._check_status(current_status)
        super().__init__(start_value=current_status)


def fire_transition(
    machine_cls: type[StateMachine], current_status: str, event_name: str
) -> str:
    """Validate a transition and return the resulting status.

    Creates a throwaway machine at ``current_status``, fires ``event_name``
    and returns the new status string.

    Raises:
        InvalidStateTransitionError: If the event is not allowed from the status.
        ValueError: If the status or event name is unknown to the machine.
    """
    sm = machine_cls(current_status=current_status)  # type: ignore[call-arg]

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"  # type: ignore[attr-defined]
        )

    try:
        event_method()
    except TransitionNotAllowed as exc:
        raise InvalidStateTransitionError(current_status, event_name) from exc
    return sm.status  # type: ignore[attr-defined]


def allowed_from(machine_cls: type[StateMachine], event_name: str) -> list[str]:
    """Return the source status values from which ``event_name`` may fire.

    Used to build the ``status IN (...)`` clause of conditional writes.
    """
    return [
        str(state.value)
        for state in machine_cls.states  # type: ignore[attr-defined]
        if event_name
        in machine_cls(current_status=state.value).get_allowed_events()  # type: ignore[call-arg, attr-defined]
    ]
