"""Protocols for the external collaborators the coordinator depends on.

Identity, document storage and AIS position data all live outside this
service. The coordinator only sees these narrow interfaces; concrete
implementations live under ``infrastructure/``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from charter_coordinator.domain.capabilities import Actor
from charter_coordinator.domain.enums import AisSource


@dataclass(frozen=True)
class StoredDocument:
    url: str
    content_hash: str


@dataclass(frozen=True)
class Position:
    """A vessel position reported by an AIS provider."""

    latitude: float
    longitude: float
    timestamp: datetime
    provider: AisSource
    meta: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class UserDirectory(Protocol):
    async def resolve_user(self, user_id: str) -> Actor | None:
        """Return the actor for ``user_id`` or None if unknown."""
        ...


@runtime_checkable
class DocumentStore(Protocol):
    async def persist(self, blob: bytes, name: str) -> StoredDocument:
        """Store ``blob`` and return its retrievable URL and SHA-256 hash.

        Raises:
            CollaboratorUnavailableError: If the store cannot accept the write.
        """
        ...


@runtime_checkable
class AisProvider(Protocol):
    async def fetch_vessel_position(self, identifier: str) -> Position | None:
        """Return the latest position for an MMSI/IMO identifier, or None."""
        ...
