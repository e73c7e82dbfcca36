"""Capability resolution shared by every component.

A single function decides how an actor relates to a booking. Each service
then expresses its authorization rules in terms of the returned flags instead
of comparing IDs inline.
"""

from __future__ import annotations

from dataclasses import dataclass

from charter_coordinator.domain.enums import UserRole


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as resolved by the identity collaborator."""

    id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class Capabilities:
    is_owner: bool
    is_operator: bool
    is_admin: bool

    @property
    def is_party(self) -> bool:
        """True for the vessel owner or the chartering operator."""
        return self.is_owner or self.is_operator

    @property
    def has_standing(self) -> bool:
        """True for either party or an admin."""
        return self.is_party or self.is_admin


def resolve_capabilities(
    actor: Actor, *, owner_id: str, operator_id: str
) -> Capabilities:
    """Resolve the actor's relationship to a booking.

    Args:
        actor: The calling user.
        owner_id: Owner of the booked vessel.
        operator_id: Operator who proposed the booking.
    """
    return Capabilities(
        is_owner=actor.id == owner_id,
        is_operator=actor.id == operator_id,
        is_admin=actor.is_admin,
    )
