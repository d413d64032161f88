"""
Clock -- injectable time source for the approval domain.

Responsibility:
    Every ``decided_at``, ``completed_at``, history and comment timestamp
    comes from a Clock passed in by the caller.  The domain never reads
    the wall clock itself, so an approval trail can be reproduced exactly
    in tests.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only implementation that
    touches the operating system.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware "now" values."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` is stable between calls; ``advance()`` moves it forward by a
    number of seconds or a ``timedelta``.  Starts at ``DEFAULT_TEST_EPOCH``
    unless a start time is given.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_TEST_EPOCH

    def now(self) -> datetime:
        return self._current

    def advance(self, amount: int | float | timedelta = 1) -> datetime:
        if not isinstance(amount, timedelta):
            amount = timedelta(seconds=amount)
        if amount < timedelta(0):
            raise ValueError("DeterministicClock cannot move backwards")
        self._current += amount
        return self._current
