"""
Injectable time source.

Stage entry times, SLA deadlines and transition log timestamps are all
taken from a ``Clock`` handed to the service, never from ``datetime.now()``
inside domain code.  ``SystemClock`` is the only implementation that reads
the wall clock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Repeated ``now()`` calls return the same instant until ``advance()`` or
    ``set_time()``; SLA tests step it past a deadline explicitly.
    """

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError(f"DeterministicClock needs an aware datetime, got {start!r}")
        self._current = start or DEFAULT_TEST_EPOCH

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 0, *, minutes: int = 0, hours: int = 0) -> datetime:
        """Move forward and return the new instant."""
        self._current += timedelta(seconds=seconds, minutes=minutes, hours=hours)
        return self._current
