"""Tests for vesting schedule derivation and countdown formatting."""

import pytest

from ledger_sync.vesting import (
    VestingSchedule,
    derive_vesting_schedule,
    format_duration,
    format_time_remaining,
)
from tests.constants import T0

# Four quarterly tranches over a year, two released
HALF_VESTED = (10000, T0, 31536000, 4, 2, 7884000, 5000, 5000, T0 + 15768000)


@pytest.mark.unit
class TestDerive:
    """derive_vesting_schedule() over raw ledger tuples."""

    def test_half_vested_scenario(self):
        schedule = derive_vesting_schedule(HALF_VESTED)

        assert isinstance(schedule, VestingSchedule)
        assert schedule.remaining_amount == 5000
        assert schedule.tranche_label == "2/4"
        assert schedule.tranche_fraction == 0.5
        assert schedule.released_fraction == 0.5
        assert not schedule.is_complete

    def test_countdown_before_and_after_release_time(self):
        schedule = derive_vesting_schedule(HALF_VESTED)
        release_at = T0 + 15768000

        before = format_time_remaining(schedule.next_release_time, now=release_at - 90061)
        after = format_time_remaining(schedule.next_release_time, now=release_at + 1)

        assert before == "1d 1h 1m 1s"
        assert after == "ready"
        assert schedule.time_remaining(now=release_at - 10) == 10
        assert schedule.time_remaining(now=release_at + 10) == 0

    def test_can_release_only_when_due(self):
        schedule = derive_vesting_schedule(HALF_VESTED)

        assert not schedule.can_release(now=T0 + 15767999)
        assert schedule.can_release(now=T0 + 15768000)

    def test_zero_total_means_no_vesting(self):
        assert derive_vesting_schedule((0, 0, 0, 0, 0, 0, 0, 0, 0)) is None

    def test_complete_schedule_has_nothing_remaining(self):
        # The ledger may still report a stale remaining figure
        raw = (10000, T0, 31536000, 4, 4, 7884000, 10000, 7, T0 + 31536000)
        schedule = derive_vesting_schedule(raw)

        assert schedule.is_complete
        assert schedule.remaining_amount == 0
        assert schedule.time_remaining(now=T0) == 0
        assert not schedule.can_release(now=T0 + 10**9)

    @pytest.mark.parametrize(
        "raw",
        [
            (100, T0, 10, 0, 0, 10, 0, 100, T0),  # no tranches
            (100, T0, 10, 4, 5, 10, 0, 100, T0),  # current beyond total
            (100, T0, 10, 4, 1, 10, 150, 0, T0),  # released beyond total
        ],
    )
    def test_inconsistent_tuples_rejected(self, raw):
        with pytest.raises(ValueError):
            derive_vesting_schedule(raw)


@pytest.mark.unit
class TestFormatDuration:
    """format_duration() renders d/h/m/s with leading zeros dropped."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (0, "0s"),
            (59, "59s"),
            (60, "1m 0s"),
            (3600, "1h 0m 0s"),
            (93784, "1d 2h 3m 4s"),
            (86400, "1d 0h 0m 0s"),
        ],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_negative_clamps_to_zero(self):
        assert format_duration(-5) == "0s"

    def test_time_remaining_at_exact_target_is_ready(self):
        assert format_time_remaining(100, now=100) == "ready"
