"""
Clock -- injectable time source.

Approval and submission timestamps come from a Clock handed to the state
machine, never from ``datetime.now()``, so tests can pin them.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance()`` or
    ``set_time()`` is called.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.DEFAULT_START
        if self._current.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware time")
        self._current = moment

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward and return the new time."""
        self._current += timedelta(seconds=seconds)
        return self._current
