import logging
from contextlib import contextmanager
from datetime import date, datetime
from threading import Lock

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dental_office.database import SLOT_HOLDING_STATUSES
from dental_office.models.appointment import Appointment
from dental_office.models.service import DentistService, Service
from dental_office.scheduling.slots import combine

logger = logging.getLogger(__name__)

SLOT_TAKEN_DETAIL = 'This time slot is already booked'
PATIENT_DUPLICATE_DETAIL = 'You already have an appointment at this time slot'
DENTIST_DUPLICATE_DETAIL = 'This patient already has an appointment at this time slot'

_LOCK_STRIPES = 64
_slot_locks = [Lock() for _ in range(_LOCK_STRIPES)]


@contextmanager
def slot_lock(dentist_id: int, day: date, time_value: str):
    """Serialize check-then-write for one (dentist, date, time) key within this process."""
    lock = _slot_locks[hash((dentist_id, day, time_value)) % _LOCK_STRIPES]
    with lock:
        yield


def find_conflicting(
    db: Session,
    dentist_id: int,
    day: date,
    time_value: str,
    exclude_id: int | None = None,
    patient_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.dentist_id == dentist_id,
        Appointment.date == day,
        Appointment.time == time_value,
        Appointment.status.in_(SLOT_HOLDING_STATUSES),
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)
    return query.first()


def ensure_slot_free(
    db: Session,
    appointment: Appointment,
    duplicate_detail: str = PATIENT_DUPLICATE_DETAIL,
) -> None:
    with db.no_autoflush:
        same_patient = find_conflicting(
            db,
            appointment.dentist_id,
            appointment.date,
            appointment.time,
            exclude_id=appointment.id,
            patient_id=appointment.patient_id,
        )
        if same_patient is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=duplicate_detail)

        taken = find_conflicting(
            db,
            appointment.dentist_id,
            appointment.date,
            appointment.time,
            exclude_id=appointment.id,
        )
        if taken is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_TAKEN_DETAIL)


def ensure_future_slot(day: date, time_value: str, now: datetime | None = None) -> None:
    now = now or datetime.now()
    if combine(day, time_value) <= now:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be booked for a future date and time',
        )


def get_offering(db: Session, dentist_id: int, service_id: int) -> DentistService | None:
    return (
        db.query(DentistService)
        .filter(DentistService.dentist_id == dentist_id, DentistService.service_id == service_id)
        .first()
    )


def get_active_service(db: Session, service_id: int) -> Service:
    service = db.query(Service).filter(Service.id == service_id, Service.is_active.is_(True)).first()
    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service not found')
    return service


def resolve_duration(db: Session, dentist_id: int, service: Service) -> int:
    offering = get_offering(db, dentist_id, service.id)
    if offering is not None and offering.is_offered and offering.custom_duration:
        return offering.custom_duration
    return service.default_duration


def save_booking(
    db: Session,
    appointment: Appointment,
    duplicate_detail: str = PATIENT_DUPLICATE_DETAIL,
) -> Appointment:
    """Run the conflict guard and commit the appointment as one step per slot key.

    The partial unique index on slot-holding appointments rejects whatever
    slips past the in-process lock (another worker process, for instance);
    that rejection is reported as the same conflict.
    """
    with slot_lock(appointment.dentist_id, appointment.date, appointment.time):
        ensure_slot_free(db, appointment, duplicate_detail=duplicate_detail)
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.info(
                'Slot index rejected booking for dentist %s on %s at %s',
                appointment.dentist_id,
                appointment.date,
                appointment.time,
            )
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_TAKEN_DETAIL) from exc

    db.refresh(appointment)
    logger.info(
        'Appointment %s saved for dentist %s on %s at %s (%s)',
        appointment.id,
        appointment.dentist_id,
        appointment.date,
        appointment.time,
        appointment.status,
    )
    return appointment
