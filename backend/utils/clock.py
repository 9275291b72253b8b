"""Clock abstraction so time-dependent logic can be tested deterministically."""

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current local time as a timezone-aware datetime."""
        ...


class SystemClock:
    """Wall clock of the serving process, in its local timezone."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class FixedClock:
    """A clock that always returns the same instant (until moved)."""

    def __init__(self, now: datetime):
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        """Move the clock to a new instant."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self._now = now


def utc_date_str(moment: datetime) -> str:
    """YYYY-MM-DD of a moment in UTC."""
    return moment.astimezone(timezone.utc).date().isoformat()
