"""
Injectable time source.

Services take a Clock instead of calling ``datetime.now()``: transition
timestamps are part of the audit hash chain, so tests pin them with
DeterministicClock.  Every clock returns timezone-aware UTC datetimes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Clock times must be timezone-aware, got {value!r}")
    return value.astimezone(timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests.

    Time stands still between calls to ``advance``, ``tick`` and
    ``set_time``.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _as_utc(start) if start is not None else DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = _as_utc(value)

    def advance(self, seconds: float | timedelta = 1) -> None:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        if step < timedelta(0):
            raise ValueError("DeterministicClock cannot move backwards")
        self._current += step

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        self.advance(1)
        return self._current
