"""Tests for SystemClock."""

from datetime import UTC, datetime

from streampub.infrastructure.system_clock import SystemClock
from streampub.ports.clock import ClockPort


def test_system_clock_returns_aware_utc_now():
    clock = SystemClock()
    before = datetime.now(UTC)

    now = clock.now()

    assert isinstance(clock, ClockPort)
    assert now.tzinfo is UTC
    assert before <= now <= datetime.now(UTC)
