"""Time units and deadline arithmetic for bounded waits.

Bounded waits compute an absolute deadline once, then repeated partial waits
subtract the elapsed wall-clock time from the remaining budget. Durations are
kept as integer nanoseconds so that mixing units never loses precision.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

__all__ = [
    "TimeUnit",
    "Deadline",
    "to_nanos",
    "split_seconds_nanos",
    "wait_seconds",
]

NANOS_PER_SECOND = 1_000_000_000


class TimeUnit(Enum):
    """Time unit with its length in nanoseconds."""

    NANOSECONDS = 1
    MICROSECONDS = 1_000
    MILLISECONDS = 1_000_000
    SECONDS = NANOS_PER_SECOND
    MINUTES = 60 * NANOS_PER_SECOND
    HOURS = 3600 * NANOS_PER_SECOND
    DAYS = 86400 * NANOS_PER_SECOND

    @property
    def nanos(self) -> int:
        return self.value

    def to_nanos(self, amount: float) -> int:
        return int(round(amount * self.value))

    @classmethod
    def parse(cls, value: TimeUnit | str) -> TimeUnit:
        """Parse a unit from an enum member, its name or a short alias.

        Raises:
            ValueError: If the unit is unknown
        """
        if isinstance(value, TimeUnit):
            return value
        key = value.strip().lower()
        unit = _ALIASES.get(key)
        if unit is None:
            try:
                return cls[key.upper()]
            except KeyError:
                raise ValueError(f"unknown time unit: {value!r}") from None
        return unit


_ALIASES: dict[str, TimeUnit] = {
    "ns": TimeUnit.NANOSECONDS,
    "us": TimeUnit.MICROSECONDS,
    "µs": TimeUnit.MICROSECONDS,
    "ms": TimeUnit.MILLISECONDS,
    "s": TimeUnit.SECONDS,
    "sec": TimeUnit.SECONDS,
    "m": TimeUnit.MINUTES,
    "min": TimeUnit.MINUTES,
    "h": TimeUnit.HOURS,
    "d": TimeUnit.DAYS,
}


def to_nanos(timeout: float | timedelta, unit: TimeUnit | str = TimeUnit.SECONDS) -> int:
    """Convert ``timeout`` expressed in ``unit`` to nanoseconds.

    A :class:`~datetime.timedelta` carries its own unit and ignores ``unit``.
    """
    if isinstance(timeout, timedelta):
        return (
            (timeout.days * 86400 + timeout.seconds) * NANOS_PER_SECOND
            + timeout.microseconds * 1_000
        )
    return TimeUnit.parse(unit).to_nanos(timeout)


def split_seconds_nanos(nanos: int) -> tuple[int, int]:
    """Decompose a duration into whole seconds and the nanosecond remainder."""
    return divmod(nanos, NANOS_PER_SECOND)


def wait_seconds(nanos: int) -> float:
    """Timeout argument for wait primitives that take float seconds.

    Precision follows the size of the remainder: below one second the full
    nanosecond value is kept, from 1000 seconds on only whole seconds count,
    otherwise milliseconds.
    """
    if nanos <= 0:
        return 0.0
    secs, rem = split_seconds_nanos(nanos)
    if secs == 0:
        return rem / NANOS_PER_SECOND
    if secs >= 1000:
        return float(secs)
    return (secs * 1000 + rem // 1_000_000) / 1000


@dataclass
class Deadline:
    """Absolute deadline computed once from a budget.

    Example:
        deadline = Deadline.after(5, TimeUnit.SECONDS)
        process.wait(timeout=deadline.remaining_seconds())
        if deadline.expired():
            ...
    """

    budget_ns: int
    started_ns: int = field(default_factory=time.monotonic_ns)

    @classmethod
    def after(cls, timeout: float | timedelta, unit: TimeUnit | str = TimeUnit.SECONDS) -> Deadline:
        return cls(to_nanos(timeout, unit))

    def elapsed_ns(self) -> int:
        return time.monotonic_ns() - self.started_ns

    def remaining_ns(self) -> int:
        return self.budget_ns - self.elapsed_ns()

    def remaining_seconds(self) -> float:
        return wait_seconds(self.remaining_ns())

    def expired(self) -> bool:
        return self.remaining_ns() <= 0
