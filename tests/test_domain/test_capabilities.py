"""Tests for capability resolution."""

from __future__ import annotations

from charter_coordinator.domain.capabilities import Actor, resolve_capabilities
from charter_coordinator.domain.enums import UserRole


def caps_for(actor: Actor):
    return resolve_capabilities(actor, owner_id="owner-1", operator_id="operator-1")


class TestResolveCapabilities:
    def test_owner(self) -> None:
        caps = caps_for(Actor("owner-1", UserRole.OWNER))
        assert caps.is_owner and caps.is_party and caps.has_standing
        assert not caps.is_operator

    def test_operator(self) -> None:
        caps = caps_for(Actor("operator-1", UserRole.OPERATOR))
        assert caps.is_operator and caps.is_party

    def test_admin_has_standing_but_is_not_a_party(self) -> None:
        caps = caps_for(Actor("admin-1", UserRole.ADMIN))
        assert caps.is_admin
        assert caps.has_standing
        assert not caps.is_party

    def test_stranger_has_nothing(self) -> None:
        caps = caps_for(Actor("operator-2", UserRole.OPERATOR))
        assert not caps.has_standing

    def test_regulator_has_no_standing(self) -> None:
        caps = caps_for(Actor("reg-1", UserRole.REGULATOR))
        assert not caps.has_standing
