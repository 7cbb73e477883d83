"""Tests for the injectable clock."""

from datetime import datetime, timedelta, timezone

from rental_kernel.domain.clock import DeterministicClock, SystemClock


def test_deterministic_clock_is_stable_until_advanced():
    start = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    clock = DeterministicClock(start)
    assert clock.now() == clock.now() == start

    clock.advance_minutes(90)
    assert clock.now() == start + timedelta(minutes=90)

    clock.set_time(start)
    assert clock.now() == start


def test_system_clock_is_utc_aware():
    assert SystemClock().now().tzinfo is timezone.utc
