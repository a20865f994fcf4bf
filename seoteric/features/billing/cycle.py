"""
seoteric/features/billing/cycle.py

Billing cycle window calculator.

Cycles recur monthly on the anchor's calendar day, clamped to the length of
each month, keeping the anchor's time of day (millisecond precision).

Pure functions: the same (anchor, now) always yields the same window.
"""

import calendar
from datetime import datetime, timezone
from typing import Optional, Tuple

from seoteric.models.billing import CycleWindow


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def offset_year_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """Shift a 1-based (year, month) by `delta` months, rolling years."""
    total = year * 12 + (month - 1) + delta
    return total // 12, total % 12 + 1


def anchored_month_timestamp(year: int, month: int, anchor: datetime) -> datetime:
    """
    The anchor's day/time placed in the given month.

    Day is clamped to the month length (anchor day 31 in April -> 30th).
    """
    anchor = _as_utc(anchor)
    day = min(anchor.day, days_in_month(year, month))
    return datetime(
        year,
        month,
        day,
        anchor.hour,
        anchor.minute,
        anchor.second,
        (anchor.microsecond // 1000) * 1000,
        tzinfo=timezone.utc,
    )


def shift_anchored_month(anchor: datetime, delta_months: int) -> datetime:
    """Move an anchored timestamp by whole months with the same clamping rule."""
    anchor = _as_utc(anchor)
    year, month = offset_year_month(anchor.year, anchor.month, delta_months)
    return anchored_month_timestamp(year, month, anchor)


def cycle_window_from_anchor(anchor: datetime, now: datetime) -> CycleWindow:
    """
    Active cycle [start, end) containing `now`.

    Args:
        anchor: Any instant whose day-of-month and time of day define rollover
        now: Reference instant

    Returns:
        CycleWindow with start <= now < end
    """
    now = _as_utc(now)
    this_month_anchor = anchored_month_timestamp(now.year, now.month, anchor)

    if now < this_month_anchor:
        return CycleWindow(
            start=shift_anchored_month(this_month_anchor, -1),
            end=this_month_anchor,
        )

    return CycleWindow(
        start=this_month_anchor,
        end=shift_anchored_month(this_month_anchor, 1),
    )


def parse_iso_instant(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from the billing provider.

    Returns None for missing or unparseable values; naive values are UTC.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _as_utc(parsed)
