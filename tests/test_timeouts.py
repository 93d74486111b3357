"""Time unit and deadline tests."""

from __future__ import annotations

import time
from datetime import timedelta

import pytest

from procshell.runtime.timeouts import (
    Deadline,
    TimeUnit,
    split_seconds_nanos,
    to_nanos,
    wait_seconds,
)


class TestTimeUnit:
    """TimeUnit parsing and conversion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("ns", TimeUnit.NANOSECONDS),
            ("us", TimeUnit.MICROSECONDS),
            ("µs", TimeUnit.MICROSECONDS),
            ("ms", TimeUnit.MILLISECONDS),
            ("s", TimeUnit.SECONDS),
            ("sec", TimeUnit.SECONDS),
            ("min", TimeUnit.MINUTES),
            ("h", TimeUnit.HOURS),
            ("d", TimeUnit.DAYS),
            ("Seconds", TimeUnit.SECONDS),
            ("MILLISECONDS", TimeUnit.MILLISECONDS),
            (TimeUnit.HOURS, TimeUnit.HOURS),
        ],
    )
    def test_parse(self, value, expected):
        assert TimeUnit.parse(value) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="unknown time unit"):
            TimeUnit.parse("fortnight")

    def test_nanos(self):
        assert TimeUnit.MILLISECONDS.nanos == 1_000_000
        assert TimeUnit.DAYS.nanos == 86_400 * 10**9

    def test_to_nanos(self):
        assert TimeUnit.SECONDS.to_nanos(1.5) == 1_500_000_000
        assert TimeUnit.MICROSECONDS.to_nanos(3) == 3_000


class TestConversion:
    """Module-level conversion helpers."""

    def test_to_nanos_default_seconds(self):
        assert to_nanos(2) == 2_000_000_000

    def test_to_nanos_with_unit_alias(self):
        assert to_nanos(250, "ms") == 250_000_000

    def test_to_nanos_timedelta_ignores_unit(self):
        """timedelta carries its own unit."""
        assert to_nanos(timedelta(seconds=1, microseconds=5), TimeUnit.DAYS) == 1_000_005_000

    def test_split_seconds_nanos(self):
        assert split_seconds_nanos(2_000_000_123) == (2, 123)
        assert split_seconds_nanos(999) == (0, 999)

    @pytest.mark.parametrize(
        "nanos,expected",
        [
            (0, 0.0),
            (-5, 0.0),
            (500, 500e-9),
            (999_999_999, 0.999999999),
            (2_123_456_789, 2.123),
            (999_999_999_999, 999.999),
            (1_000_000_000_001, 1000.0),
            (1_500_900_000_000, 1500.0),
        ],
    )
    def test_wait_seconds_precision(self, nanos, expected):
        """Sub-second keeps nanoseconds, 1000s and above keeps whole seconds, otherwise milliseconds."""
        assert wait_seconds(nanos) == pytest.approx(expected)


class TestDeadline:
    """Deadline arithmetic."""

    def test_after(self):
        deadline = Deadline.after(10)
        assert deadline.budget_ns == 10_000_000_000
        assert not deadline.expired()
        assert 9 < deadline.remaining_seconds() <= 10

    def test_after_with_unit(self):
        assert Deadline.after(5, TimeUnit.MINUTES).budget_ns == 300 * 10**9

    def test_zero_budget_expired(self):
        deadline = Deadline(0)
        assert deadline.expired()
        assert deadline.remaining_seconds() == 0.0

    def test_elapsed(self):
        deadline = Deadline.after(50, "ms")
        time.sleep(0.06)
        assert deadline.elapsed_ns() >= 50_000_000
        assert deadline.expired()
        assert deadline.remaining_ns() <= 0
