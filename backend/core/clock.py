"""
Injectable time source.

Services receive a Clock instead of calling ``datetime.now()`` so that
dispense timestamps and report defaults are reproducible in tests.
"""

from datetime import datetime, timedelta, timezone


class Clock:
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Test clock that returns a controlled instant."""

    def __init__(self, at: datetime):
        self.set(at)

    def set(self, at: datetime) -> None:
        if at.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._at = at.astimezone(timezone.utc)

    def advance(self, **delta) -> None:
        self._at = self._at + timedelta(**delta)

    def now(self) -> datetime:
        return self._at
