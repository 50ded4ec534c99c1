# backend/mixlab/core/timeutils.py
"""Minute-of-day arithmetic for studio time slots."""

from datetime import date, datetime, time, timedelta
from typing import Tuple

MINUTES_PER_HOUR = 60


def to_minutes(value: time) -> int:
    return value.hour * MINUTES_PER_HOUR + value.minute


def from_minutes(minutes: int) -> time:
    """Convert minutes since midnight to a time; values must be within one day."""
    if minutes < 0 or minutes >= 24 * MINUTES_PER_HOUR:
        raise ValueError(f"Minute offset {minutes} is outside a single day")
    return time(minutes // MINUTES_PER_HOUR, minutes % MINUTES_PER_HOUR)


def interval_minutes(start: time, duration_hours: int) -> Tuple[int, int]:
    """Half-open ``[start, start + duration)`` interval in minutes."""
    start_min = to_minutes(start)
    return start_min, start_min + duration_hours * MINUTES_PER_HOUR


def intervals_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Half-open overlap; touching boundaries do not overlap."""
    return start1 < end2 and start2 < end1


def combine(booking_date: date, start: time, duration_hours: int = 0) -> datetime:
    return datetime.combine(booking_date, start) + timedelta(hours=duration_hours)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
