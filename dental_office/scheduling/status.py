"""Appointment lifecycle rules."""

from datetime import datetime, timedelta

from fastapi import HTTPException, status

from dental_office.models.appointment import APPOINTMENT_STATUSES
from dental_office.scheduling.slots import combine

RESERVED_STATUSES = ('pending', 'scheduled')
TERMINAL_STATUSES = ('completed', 'cancelled', 'no-show')
PATIENT_CHANGE_WINDOW = timedelta(hours=24)

ALLOWED_TRANSITIONS = {
    'pending': {'confirmed', 'completed', 'cancelled', 'no-show'},
    'scheduled': {'confirmed', 'completed', 'cancelled', 'no-show'},
    'confirmed': {'completed', 'cancelled', 'no-show'},
    'completed': set(),
    'cancelled': set(),
    'no-show': set(),
}

_PAST_TENSE = {'cancel': 'cancelled', 'reschedule': 'rescheduled'}


def is_terminal(current_status: str) -> bool:
    return current_status in TERMINAL_STATUSES


def can_transition(current_status: str, target_status: str) -> bool:
    return target_status in ALLOWED_TRANSITIONS.get(current_status, set())


def ensure_transition_allowed(current_status: str, target_status: str) -> None:
    if target_status not in APPOINTMENT_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Invalid status. Allowed values: {", ".join(APPOINTMENT_STATUSES)}.',
        )
    if not can_transition(current_status, target_status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Cannot change appointment status from {current_status} to {target_status}.',
        )


def current_time() -> datetime:
    return datetime.now()


def appointment_start(appointment) -> datetime:
    return combine(appointment.date, appointment.time)


def can_patient_modify(appointment, now: datetime | None = None) -> bool:
    """Patients may cancel or reschedule only non-terminal visits starting more than 24h out."""
    if is_terminal(appointment.status):
        return False
    now = now or datetime.now()
    return appointment_start(appointment) - now > PATIENT_CHANGE_WINDOW


def ensure_patient_can_modify(appointment, action: str, now: datetime | None = None) -> None:
    if is_terminal(appointment.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Cannot {action} an appointment that is {appointment.status}.',
        )
    if not can_patient_modify(appointment, now):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Appointments can only be {_PAST_TENSE.get(action, action)} more than 24 hours in advance.',
        )
