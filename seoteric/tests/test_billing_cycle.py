"""Tests for the anchored-month cycle window calculator."""

from datetime import datetime, timedelta, timezone

import pytest

from seoteric.features.billing.cycle import (
    anchored_month_timestamp,
    cycle_window_from_anchor,
    offset_year_month,
    parse_iso_instant,
    shift_anchored_month,
)


UTC = timezone.utc


def dt(*args):
    return datetime(*args, tzinfo=UTC)


def test_window_after_this_months_anchor():
    window = cycle_window_from_anchor(dt(2024, 1, 15, 10, 30), dt(2024, 3, 20))
    assert window.start == dt(2024, 3, 15, 10, 30)
    assert window.end == dt(2024, 4, 15, 10, 30)


def test_window_before_this_months_anchor_uses_previous_month():
    window = cycle_window_from_anchor(dt(2024, 1, 15, 10, 30), dt(2024, 3, 10))
    assert window.start == dt(2024, 2, 15, 10, 30)
    assert window.end == dt(2024, 3, 15, 10, 30)


def test_anchor_instant_itself_opens_the_new_cycle():
    now = dt(2024, 3, 15, 10, 30)
    window = cycle_window_from_anchor(dt(2024, 1, 15, 10, 30), now)
    assert window.start == now
    assert window.start <= now < window.end


def test_one_millisecond_before_rollover_stays_in_old_cycle():
    now = dt(2024, 3, 15, 10, 29, 59, 999000)
    window = cycle_window_from_anchor(dt(2024, 1, 15, 10, 30), now)
    assert window.end == dt(2024, 3, 15, 10, 30)


def test_day_31_clamps_to_28_in_non_leap_february():
    window = cycle_window_from_anchor(dt(2023, 1, 31), dt(2023, 2, 28, 12))
    assert window.start == dt(2023, 2, 28)
    assert window.end == dt(2023, 3, 28)


def test_day_31_clamps_to_29_in_leap_february():
    window = cycle_window_from_anchor(dt(2024, 1, 31), dt(2024, 2, 29, 12))
    assert window.start == dt(2024, 2, 29)
    assert window.end == dt(2024, 3, 29)


def test_day_31_clamps_in_thirty_day_month():
    window = cycle_window_from_anchor(dt(2024, 1, 31, 6), dt(2024, 4, 30, 7))
    assert window.start == dt(2024, 4, 30, 6)
    assert window.end == dt(2024, 5, 30, 6)


def test_year_rolls_backwards():
    window = cycle_window_from_anchor(dt(2023, 12, 5, 9), dt(2024, 1, 2))
    assert window.start == dt(2023, 12, 5, 9)
    assert window.end == dt(2024, 1, 5, 9)


def test_year_rolls_forwards():
    window = cycle_window_from_anchor(dt(2023, 12, 5, 9), dt(2023, 12, 20))
    assert window.start == dt(2023, 12, 5, 9)
    assert window.end == dt(2024, 1, 5, 9)


def test_time_of_day_kept_to_the_millisecond():
    anchor = dt(2024, 1, 15, 10, 30, 45, 123456)
    window = cycle_window_from_anchor(anchor, dt(2024, 6, 20))
    assert window.start == dt(2024, 6, 15, 10, 30, 45, 123000)
    assert window.start_ms % 1000 == 123


def test_naive_inputs_are_treated_as_utc():
    window = cycle_window_from_anchor(datetime(2024, 1, 15), datetime(2024, 3, 20))
    assert window.start == dt(2024, 3, 15)


def test_same_inputs_same_window():
    anchor, now = dt(2024, 1, 31, 23, 59), dt(2024, 2, 14, 3)
    assert cycle_window_from_anchor(anchor, now) == cycle_window_from_anchor(anchor, now)


@pytest.mark.parametrize("anchor_day", [1, 15, 28, 29, 30, 31])
def test_window_always_contains_now(anchor_day):
    anchor = dt(2023, 1, anchor_day, 13, 45)
    now = dt(2023, 11, 1)
    # Walk a leap-year boundary in 7-hour steps
    for _ in range(0, 24 * 200, 7):
        window = cycle_window_from_anchor(anchor, now)
        assert window.start <= now < window.end
        now += timedelta(hours=7)


def test_offset_year_month():
    assert offset_year_month(2024, 12, 1) == (2025, 1)
    assert offset_year_month(2024, 1, -1) == (2023, 12)
    assert offset_year_month(2024, 6, 0) == (2024, 6)
    assert offset_year_month(2024, 3, -15) == (2022, 12)


def test_anchored_month_timestamp_clamps():
    assert anchored_month_timestamp(2023, 2, dt(2020, 5, 31, 8)) == dt(2023, 2, 28, 8)
    assert anchored_month_timestamp(2023, 4, dt(2020, 5, 31, 8)) == dt(2023, 4, 30, 8)


def test_shift_anchored_month():
    assert shift_anchored_month(dt(2024, 1, 31), 1) == dt(2024, 2, 29)
    assert shift_anchored_month(dt(2024, 3, 10, 8), 1) == dt(2024, 4, 10, 8)
    assert shift_anchored_month(dt(2024, 1, 10), -1) == dt(2023, 12, 10)


def test_parse_iso_instant():
    assert parse_iso_instant("2024-03-10T08:00:00Z") == dt(2024, 3, 10, 8)
    assert parse_iso_instant("2024-03-10T09:00:00+01:00") == dt(2024, 3, 10, 8)
    assert parse_iso_instant("2024-03-10T08:00:00") == dt(2024, 3, 10, 8)
    assert parse_iso_instant("not-a-date") is None
    assert parse_iso_instant("") is None
    assert parse_iso_instant(None) is None


def test_account_created_mid_month_before_rollover():
    window = cycle_window_from_anchor(dt(2024, 1, 15), dt(2024, 3, 10))
    assert window.start == dt(2024, 2, 15)
    assert window.end == dt(2024, 3, 15)


def test_consecutive_windows_do_not_gap():
    anchor = dt(2024, 1, 15, 10, 30)
    window = cycle_window_from_anchor(anchor, dt(2024, 3, 20))
    following = cycle_window_from_anchor(anchor, window.end)
    assert following.start == window.end
