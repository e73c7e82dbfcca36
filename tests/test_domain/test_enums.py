"""Tests for domain enumerations."""

from __future__ import annotations

from charter_coordinator.domain.enums import (
    BookingStatus,
    ContractStatus,
    EscrowEventType,
    EscrowStatus,
    PaymentProvider,
    TrackingOutcomeStatus,
    UserRole,
    WebhookOutcome,
)


class TestBookingStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {"REQUESTED", "COUNTERED", "ACCEPTED", "CANCELLED"}
        assert {s.value for s in BookingStatus} == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(BookingStatus.REQUESTED, str)
        assert BookingStatus.REQUESTED == "REQUESTED"


class TestEscrowStatus:
    def test_three_state_ledger(self) -> None:
        assert [s.value for s in EscrowStatus] == ["PENDING", "FUNDED", "RELEASED"]

    def test_event_types_cover_dispute(self) -> None:
        assert EscrowEventType.DISPUTED == "DISPUTED"
        assert len(EscrowEventType) == 4


class TestContractStatus:
    def test_statuses(self) -> None:
        assert {s.value for s in ContractStatus} == {
            "AWAITING_SIGNATURES",
            "FULLY_SIGNED",
        }


class TestRolesAndProviders:
    def test_user_roles(self) -> None:
        assert {r.value for r in UserRole} == {"OWNER", "OPERATOR", "ADMIN", "REGULATOR"}

    def test_payment_providers(self) -> None:
        assert PaymentProvider("PAYSTACK") is PaymentProvider.PAYSTACK
        assert PaymentProvider("FLUTTERWAVE") is PaymentProvider.FLUTTERWAVE


class TestOutcomes:
    def test_poll_outcomes_are_lowercase(self) -> None:
        assert TrackingOutcomeStatus.NO_DATA == "no_data"
        assert {s.value for s in TrackingOutcomeStatus} == {
            "success",
            "skipped",
            "no_data",
            "failed",
        }

    def test_webhook_outcomes(self) -> None:
        assert WebhookOutcome.DUPLICATE == "duplicate"
