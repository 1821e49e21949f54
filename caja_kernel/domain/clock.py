"""
Clock -- time and timezone abstraction for the ledger.

Responsibility:
    Provides an injectable clock so that services never call
    ``datetime.now()`` or ``date.today()`` directly.  "Now" and "today"
    are normalized to the practice's fixed offset (Argentina, GMT-3),
    independent of the host timezone.

Architecture position:
    Kernel > Domain -- leaf dependency of every service.  SystemClock is the
    one sanctioned I/O boundary for time.

Invariants enforced:
    - ``today()`` is always the calendar date in the ledger's offset, so a
      request at 22:30 GMT-3 (01:30 UTC next day) lands in the same drawer
      as one at 09:00.
    - Every returned datetime is timezone-aware.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone, tzinfo

# Argentina has no DST; a fixed offset is exact.
ARGENTINA_TZ = timezone(timedelta(hours=-3), "ART")


def fixed_offset(hours: int) -> timezone:
    """Build a fixed-offset tzinfo (used when the offset comes from config)."""
    if hours == -3:
        return ARGENTINA_TZ
    return timezone(timedelta(hours=hours))


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock via
        constructor injection.

    Guarantees:
        - ``now()`` returns an aware ``datetime`` in the ledger offset.
        - ``today()`` is ``now()``'s calendar date in that offset.
    """

    tz: tzinfo = ARGENTINA_TZ

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time in the ledger offset."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        """Get the current calendar date in the ledger offset."""
        return self.now().astimezone(self.tz).date()

    def at_current_time(self, day: date) -> datetime:
        """Combine ``day`` with the current time-of-day.

        Movements posted for a backdated document keep the document's
        calendar date but sort among same-day movements by real posting
        order.
        """
        current = self.now().astimezone(self.tz)
        return datetime.combine(day, current.timetz())

    def start_of_day(self, day: date) -> datetime:
        """Midnight of ``day`` in the ledger offset."""
        return datetime.combine(day, time.min, tzinfo=self.tz)


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def __init__(self, tz: tzinfo = ARGENTINA_TZ):
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(self.tz)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None, tz: tzinfo = ARGENTINA_TZ):
        """
        Args:
            fixed_time: Starting time.  Naive values are taken to be in
                ``tz``.  Defaults to 2025-01-10 09:00 GMT-3.
            tz: Ledger offset.
        """
        self.tz = tz
        self._fixed_time = self._aware(fixed_time or datetime(2025, 1, 10, 9, 0, 0))
        self._advance_seconds = 0

    def _aware(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, value: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = self._aware(value)
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
