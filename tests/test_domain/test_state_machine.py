"""Tests for the booking, contract and escrow state machine guards.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. fire_transition / allowed_from work as the services use them.
    4. Terminal states stay terminal.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from charter_coordinator.domain.exceptions import InvalidStateTransitionError
from charter_coordinator.domain.state_machine import (
    BookingStateMachine,
    ContractStateMachine,
    EscrowStateMachine,
    allowed_from,
    fire_transition,
)


class TestBookingNegotiation:
    """REQUESTED -> COUNTERED* -> ACCEPTED | CANCELLED."""

    def test_counter_then_accept(self) -> None:
        sm = BookingStateMachine("REQUESTED")
        sm.counter_offer()
        assert sm.status == "COUNTERED"

        # Counter-offers can go back and forth
        sm.counter_offer()
        assert sm.status == "COUNTERED"

        sm.accept_terms()
        assert sm.status == "ACCEPTED"

    def test_accept_directly_from_requested(self) -> None:
        sm = BookingStateMachine("REQUESTED")
        sm.accept_terms()
        assert sm.status == "ACCEPTED"

    @pytest.mark.parametrize("start", ["REQUESTED", "COUNTERED"])
    def test_cancel_while_open(self, start: str) -> None:
        sm = BookingStateMachine(start)
        sm.cancel_booking()
        assert sm.status == "CANCELLED"

    @pytest.mark.parametrize("terminal", ["ACCEPTED", "CANCELLED"])
    @pytest.mark.parametrize("event", ["counter_offer", "accept_terms", "cancel_booking"])
    def test_terminal_states_reject_everything(self, terminal: str, event: str) -> None:
        sm = BookingStateMachine(terminal)
        with pytest.raises(TransitionNotAllowed):
            getattr(sm, event)()

    def test_default_state_is_requested(self) -> None:
        assert BookingStateMachine().status == "REQUESTED"


class TestContractSignatures:
    def test_add_signature_is_self_transition(self) -> None:
        sm = ContractStateMachine("AWAITING_SIGNATURES")
        sm.add_signature()
        assert sm.status == "AWAITING_SIGNATURES"

    def test_complete_signatures(self) -> None:
        sm = ContractStateMachine("AWAITING_SIGNATURES")
        sm.complete_signatures()
        assert sm.status == "FULLY_SIGNED"

    def test_fully_signed_is_sealed(self) -> None:
        sm = ContractStateMachine("FULLY_SIGNED")
        with pytest.raises(TransitionNotAllowed):
            sm.add_signature()


class TestEscrowLedger:
    def test_forward_lifecycle(self) -> None:
        sm = EscrowStateMachine("PENDING")
        sm.payment_confirmed()
        assert sm.status == "FUNDED"
        sm.funds_released()
        assert sm.status == "RELEASED"

    def test_cannot_release_pending(self) -> None:
        sm = EscrowStateMachine("PENDING")
        with pytest.raises(TransitionNotAllowed):
            sm.funds_released()

    def test_cannot_fund_twice(self) -> None:
        sm = EscrowStateMachine("FUNDED")
        with pytest.raises(TransitionNotAllowed):
            sm.payment_confirmed()

    def test_no_way_back_from_released(self) -> None:
        sm = EscrowStateMachine("RELEASED")
        assert sm.get_allowed_events() == []


class TestFireTransition:
    def test_returns_new_status(self) -> None:
        assert fire_transition(EscrowStateMachine, "PENDING", "payment_confirmed") == "FUNDED"

    def test_invalid_transition_raises_domain_error(self) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            fire_transition(EscrowStateMachine, "RELEASED", "payment_confirmed")
        assert exc_info.value.current_state == "RELEASED"
        assert exc_info.value.attempted_event == "payment_confirmed"

    def test_unknown_event_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            fire_transition(BookingStateMachine, "REQUESTED", "teleport")

    def test_unknown_status_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            BookingStateMachine("ARCHIVED")


class TestAllowedFrom:
    def test_booking_events(self) -> None:
        assert sorted(allowed_from(BookingStateMachine, "accept_terms")) == [
            "COUNTERED",
            "REQUESTED",
        ]
        assert sorted(allowed_from(BookingStateMachine, "counter_offer")) == [
            "COUNTERED",
            "REQUESTED",
        ]

    def test_escrow_events(self) -> None:
        assert allowed_from(EscrowStateMachine, "payment_confirmed") == ["PENDING"]
        assert allowed_from(EscrowStateMachine, "funds_released") == ["FUNDED"]

    def test_contract_events(self) -> None:
        assert allowed_from(ContractStateMachine, "complete_signatures") == [
            "AWAITING_SIGNATURES"
        ]
