"""
Injectable time source for approval timestamps.

The workflow engine never reads the wall clock.  The approval service asks
its ``Clock`` once per submitted action and hands the value to
``apply_action``, so every ``ApprovalAction.timestamp`` in a history comes
from exactly one ``now()`` call.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests; moves only when ``advance`` is called."""

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> datetime:
        """Move forward by ``seconds`` and return the new time."""
        self._current = self._current + timedelta(seconds=seconds)
        return self._current
