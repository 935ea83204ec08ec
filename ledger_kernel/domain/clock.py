"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()`` so posting
timestamps, stock movement times and override audit records are
reproducible under test.  All values are timezone-aware UTC.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

DEFAULT_TEST_INSTANT = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests; moves only when ``advance()`` is called."""

    def __init__(self, start: datetime = DEFAULT_TEST_INSTANT):
        if start.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware start")
        self._current = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta | int = 1) -> datetime:
        """Move forward by ``delta`` (seconds when an int) and return the new instant."""
        if isinstance(delta, int):
            delta = timedelta(seconds=delta)
        self._current += delta
        return self._current
