"""Time oracle used to stamp new bindings.

The service never reads the wall clock directly; it asks a :class:`Clock`.
Monotonicity is not validated.
"""
from __future__ import annotations

import datetime
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of the current ledger time."""

    @abstractmethod
    def now(self) -> datetime.datetime:
        """Return the current time as a timezone-aware UTC datetime."""


class SystemClock(Clock):
    """Clock backed by the host's wall clock."""

    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc)


class FixedClock(Clock):
    """Clock that returns a settable instant. Useful in tests and replays.

    Parameters
    ----------
    instant:
        Initial time. Naive datetimes are interpreted as UTC.
    """

    def __init__(self, instant: datetime.datetime) -> None:
        self._instant = _as_utc(instant)

    def now(self) -> datetime.datetime:
        return self._instant

    def set(self, instant: datetime.datetime) -> None:
        self._instant = _as_utc(instant)

    def advance(self, seconds: float) -> datetime.datetime:
        """Move the clock forward and return the new instant."""
        self._instant = self._instant + datetime.timedelta(seconds=seconds)
        return self._instant


def _as_utc(instant: datetime.datetime) -> datetime.datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=datetime.timezone.utc)
    return instant.astimezone(datetime.timezone.utc)


__all__ = ["Clock", "FixedClock", "SystemClock"]
