"""Time helpers and raw slot generation.

Times travel through the system as zero-padded ``HH:MM`` strings (24-hour).
Slot generation only marks granularity positions inside a working window;
whether an appointment of a given duration fits is decided by the callers.
"""

import re
from datetime import date, datetime

SLOT_GRANULARITY_MINUTES = 30
TIME_PATTERN = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')
MINUTES_PER_DAY = 24 * 60


def is_valid_time(value: str | None) -> bool:
    return bool(value) and TIME_PATTERN.match(value.strip()) is not None


def normalize_time(value: str) -> str:
    match = TIME_PATTERN.match((value or '').strip())
    if not match:
        raise ValueError('Invalid time format. Use HH:MM')
    return f'{int(match.group(1)):02d}:{match.group(2)}'


def to_minutes(value: str) -> int:
    hours, minutes = normalize_time(value).split(':')
    return int(hours) * 60 + int(minutes)


def from_minutes(total_minutes: int) -> str:
    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def format_12_hour(value: str) -> str:
    hours, minutes = normalize_time(value).split(':')
    hour = int(hours)
    suffix = 'PM' if hour >= 12 else 'AM'
    display_hour = hour % 12 or 12
    return f'{display_hour}:{minutes} {suffix}'


def combine(day: date, value: str) -> datetime:
    hours, minutes = normalize_time(value).split(':')
    return datetime.combine(day, datetime.min.time()).replace(hour=int(hours), minute=int(minutes))


def generate_time_slots(start: str, end: str, granularity: int = SLOT_GRANULARITY_MINUTES) -> list[str]:
    current = to_minutes(start)
    end_minutes = to_minutes(end)

    slots: list[str] = []
    while current < end_minutes:
        slots.append(from_minutes(current))
        current += granularity

    return slots


def slot_ends_within(start: str, duration_minutes: int, window_end: str) -> bool:
    end_minutes = to_minutes(start) + duration_minutes
    return end_minutes <= min(to_minutes(window_end), MINUTES_PER_DAY)
