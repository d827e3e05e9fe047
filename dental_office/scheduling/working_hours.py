from collections.abc import Mapping

from fastapi import HTTPException, status

from dental_office.models.dentist import DEFAULT_WORKING_HOURS, WEEKDAYS, WorkingHours
from dental_office.scheduling.slots import is_valid_time, normalize_time, to_minutes


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def validate_time_window(label: str, start: str | None, end: str | None) -> tuple[str, str]:
    if not start or not end:
        raise _bad_request(f'{label}: start and end times are required.')
    if not is_valid_time(start):
        raise _bad_request(f'{label}: start time must be in HH:MM format.')
    if not is_valid_time(end):
        raise _bad_request(f'{label}: end time must be in HH:MM format.')
    if to_minutes(start) >= to_minutes(end):
        raise _bad_request(f'{label}: start time must be before end time.')
    return normalize_time(start), normalize_time(end)


def validate_working_hours(working_hours: Mapping[str, Mapping | None]) -> dict[str, dict]:
    """Validate a full week and return it normalized.

    Every weekday must be present. A working day needs a valid ``start`` and
    ``end`` with start strictly before end. The first violation rejects the
    whole submission, so callers can persist the result in one write.
    """
    validated: dict[str, dict] = {}

    for day in WEEKDAYS:
        entry = working_hours.get(day)
        if entry is None:
            raise _bad_request(f'Working hours for {day} are required.')

        is_working = bool(entry.get('is_working'))
        start = entry.get('start')
        end = entry.get('end')

        if is_working:
            start, end = validate_time_window(day, start, end)
        else:
            start = normalize_time(start) if is_valid_time(start) else '00:00'
            end = normalize_time(end) if is_valid_time(end) else '00:00'

        validated[day] = {'start': start, 'end': end, 'is_working': is_working}

    return validated


def seed_default_working_hours(db, dentist_id: int) -> None:
    """Add the default weekly schedule for a new dentist; the caller commits."""
    for day in WEEKDAYS:
        db.add(WorkingHours(dentist_id=dentist_id, day=day, **DEFAULT_WORKING_HOURS[day]))
