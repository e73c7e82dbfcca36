"""Charter window rules.

A window is the half-open interval ``[start, end)`` during which a vessel is
chartered. All datetimes are timezone-aware UTC.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from charter_coordinator.domain.exceptions import ValidationError

ONE_DAY = timedelta(days=1)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class CharterWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end <= self.start:
            raise ValidationError("End date must be after start date", field="end")

    def overlaps(self, other: CharterWindow) -> bool:
        """Half-open overlap: touching windows do not overlap."""
        return self.start < other.end and self.end > other.start

    def within(self, other: CharterWindow) -> bool:
        """True if this window lies entirely inside ``other``."""
        return other.start <= self.start and self.end <= other.end

    def is_active_at(self, moment: datetime) -> bool:
        """Inclusive at both ends, matching how the tracking poller selects bookings."""
        moment = ensure_utc(moment)
        return self.start <= moment <= self.end

    @property
    def charter_days(self) -> int:
        """Number of billable days, any partial day rounds up."""
        return math.ceil((self.end - self.start) / ONE_DAY)


def fits_availability(
    window: CharterWindow, availability: list[CharterWindow]
) -> bool:
    """A vessel with no declared availability is always available."""
    if not availability:
        return True
    return any(window.within(slot) for slot in availability)


def utcnow() -> datetime:
    """Default clock injected into services."""
    return datetime.now(UTC)
