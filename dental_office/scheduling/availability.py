"""Availability resolution for a dentist on a date or a date range.

The weekly ``WorkingHours`` row for the weekday gives the candidate window.
When per-date ``AvailabilityOverride`` rows exist they replace that window:
available override slots supply the candidates and unavailable ones remove
the positions they cover. Booked start times are the ``time`` values of the
dentist's slot-holding appointments on that date.
"""

from datetime import date, timedelta

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from dental_office.database import SLOT_HOLDING_STATUSES
from dental_office.models.appointment import Appointment
from dental_office.models.availability import AvailabilityOverride
from dental_office.models.dentist import DEFAULT_WORKING_HOURS, WEEKDAYS, Dentist, WorkingHours
from dental_office.models.user import User
from dental_office.scheduling.slots import format_12_hour, generate_time_slots, slot_ends_within, to_minutes

DEFAULT_RANGE_DAYS = 7
MAX_RANGE_DAYS = 31
LIMITED_AVAILABILITY_RATIO = 0.3


class SlotResponse(BaseModel):
    time: str
    display_time: str
    is_available: bool


class TimeWindow(BaseModel):
    start: str
    end: str


class DayAvailabilityResponse(BaseModel):
    date: date
    day: str
    status: str
    reason: str | None = None
    windows: list[TimeWindow] = []
    blocked: list[TimeWindow] = []
    total_slots: int = 0
    available_slots: int = 0
    slots: list[SlotResponse] = []


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def get_dentist_profile(db: Session, dentist_id: int) -> Dentist:
    dentist = (
        db.query(Dentist)
        .join(User, User.id == Dentist.user_id)
        .filter(Dentist.user_id == dentist_id, Dentist.is_active.is_(True), User.is_active.is_(True))
        .first()
    )
    if dentist is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Dentist not found')
    return dentist


def get_working_hours(db: Session, dentist_id: int) -> dict[str, dict]:
    rows = db.query(WorkingHours).filter(WorkingHours.dentist_id == dentist_id).all()
    hours = {day: dict(values) for day, values in DEFAULT_WORKING_HOURS.items()}
    for row in rows:
        hours[row.day] = {'start': row.start, 'end': row.end, 'is_working': row.is_working}
    return hours


def get_booked_times(db: Session, dentist_id: int, day: date, exclude_id: int | None = None) -> set[str]:
    query = db.query(Appointment.time).filter(
        Appointment.dentist_id == dentist_id,
        Appointment.date == day,
        Appointment.status.in_(SLOT_HOLDING_STATUSES),
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return {row.time for row in query.all()}


def _candidate_times(db: Session, dentist_id: int, day: date):
    """Return ``(windows, blocked, candidates, reason)``; no windows means the day is closed."""
    overrides = (
        db.query(AvailabilityOverride)
        .filter(AvailabilityOverride.dentist_id == dentist_id, AvailabilityOverride.date == day)
        .order_by(AvailabilityOverride.start)
        .all()
    )

    if overrides:
        windows = [(o.start, o.end) for o in overrides if o.is_available]
        if not windows:
            return [], [], [], 'Dentist is unavailable on this date'

        blocked = [(o.start, o.end) for o in overrides if not o.is_available]
        candidates: set[str] = set()
        for start, end in windows:
            candidates.update(generate_time_slots(start, end))
        candidates = {
            slot for slot in candidates
            if not any(to_minutes(start) <= to_minutes(slot) < to_minutes(end) for start, end in blocked)
        }
        return windows, blocked, sorted(candidates), None

    hours = get_working_hours(db, dentist_id)[weekday_name(day)]
    if not hours['is_working']:
        return [], [], [], f'Dentist does not work on {weekday_name(day).capitalize()}s'

    return [(hours['start'], hours['end'])], [], generate_time_slots(hours['start'], hours['end']), None


def classify_day(total_slots: int, available_slots: int) -> str:
    if total_slots == 0:
        return 'unavailable'
    if available_slots == 0:
        return 'fully-booked'
    if available_slots <= total_slots * LIMITED_AVAILABILITY_RATIO:
        return 'limited'
    return 'available'


def resolve_day(
    db: Session,
    dentist_id: int,
    day: date,
    exclude_appointment_id: int | None = None,
) -> DayAvailabilityResponse:
    windows, blocked, candidates, reason = _candidate_times(db, dentist_id, day)

    if not windows:
        return DayAvailabilityResponse(date=day, day=weekday_name(day), status='unavailable', reason=reason)

    booked = get_booked_times(db, dentist_id, day, exclude_id=exclude_appointment_id)
    slots = [
        SlotResponse(time=slot, display_time=format_12_hour(slot), is_available=slot not in booked)
        for slot in candidates
    ]
    available = sum(1 for slot in slots if slot.is_available)

    return DayAvailabilityResponse(
        date=day,
        day=weekday_name(day),
        status=classify_day(len(slots), available),
        windows=[TimeWindow(start=start, end=end) for start, end in windows],
        blocked=[TimeWindow(start=start, end=end) for start, end in blocked],
        total_slots=len(slots),
        available_slots=available,
        slots=slots,
    )


def resolve_range(
    db: Session,
    dentist_id: int,
    start_date: date,
    end_date: date | None = None,
) -> list[DayAvailabilityResponse]:
    end_date = end_date or start_date + timedelta(days=DEFAULT_RANGE_DAYS - 1)
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='End date must be on or after start date',
        )
    if (end_date - start_date).days + 1 > MAX_RANGE_DAYS:
        end_date = start_date + timedelta(days=MAX_RANGE_DAYS - 1)

    days = []
    current = start_date
    while current <= end_date:
        days.append(resolve_day(db, dentist_id, current))
        current += timedelta(days=1)
    return days


def slot_fits(day: DayAvailabilityResponse, time_value: str, duration_minutes: int) -> bool:
    """True when ``time_value`` is a candidate slot and the visit ends inside its window
    without running into a blocked override range.

    Whether the slot is already taken is left to the booking conflict guard.
    """
    if not any(slot.time == time_value for slot in day.slots):
        return False
    start = to_minutes(time_value)
    end = start + duration_minutes
    if any(start < to_minutes(block.end) and end > to_minutes(block.start) for block in day.blocked):
        return False
    return any(
        to_minutes(window.start) <= to_minutes(time_value)
        and slot_ends_within(time_value, duration_minutes, window.end)
        for window in day.windows
    )
