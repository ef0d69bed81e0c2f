"""Slot generation and time helpers.

Everything here is pure: no database, no clock.
"""
from datetime import date, time

from app.config import SLOT_GRID_MINUTES


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _from_minutes(m: int) -> time:
    return time(m // 60, m % 60)


def generate_slots(start_time: time, end_time: time, duration_minutes: int) -> list[time]:
    """
    Fixed-width start times from start_time while the whole service window
    still ends at or before end_time. 09:00-17:00 with 30 minutes gives
    09:00, 09:30, ... 16:30.
    """
    if duration_minutes <= 0:
        return []
    end = _minutes(end_time)
    current = _minutes(start_time)
    slots = []
    while current + duration_minutes <= end:
        slots.append(_from_minutes(current))
        current += duration_minutes
    return slots


def day_of_week(d: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return d.isoweekday() % 7


def parse_time(value: str | time) -> time:
    """Accept "HH:MM" or "HH:MM:SS" and normalise to a seconds-free time."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    if second:
        raise ValueError(f"invalid time {value!r}, seconds must be zero")
    return time(hour, minute)


def is_grid_aligned(t: time, grid_minutes: int = SLOT_GRID_MINUTES) -> bool:
    return t.second == 0 and _minutes(t) % grid_minutes == 0


def format_hhmm(t: time) -> str:
    return t.strftime("%H:%M")
