import logging
from datetime import date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from dental_office.auth.dependencies import require_roles
from dental_office.core.pagination import DEFAULT_LIMIT, MAX_LIMIT, paginate
from dental_office.database import get_db
from dental_office.models.appointment import APPOINTMENT_STATUSES, Appointment
from dental_office.models.availability import AvailabilityOverride
from dental_office.models.dentist import SPECIALIZATIONS, WEEKDAYS, Dentist, WorkingHours
from dental_office.models.patient import Patient
from dental_office.models.service import DentistService
from dental_office.models.user import User
from dental_office.notifications.email_service import (
    NotificationKind,
    Notifier,
    appointment_context,
    get_notifier,
    queue_notification,
)
from dental_office.scheduling.availability import get_working_hours
from dental_office.scheduling.booking import (
    DENTIST_DUPLICATE_DETAIL,
    get_active_service,
    get_offering,
    resolve_duration,
    save_booking,
)
from dental_office.scheduling.status import current_time, ensure_transition_allowed, is_terminal
from dental_office.scheduling.working_hours import validate_time_window, validate_working_hours
from dental_office.schemas.appointment import AppointmentListResponse, AppointmentResponse
from dental_office.schemas.service import DentistServiceResponse
from dental_office.schemas.user import (
    DentistSummaryResponse,
    PatientListResponse,
    dentist_summary,
    patient_summary,
)
from dental_office.schemas.validators import check_duration, clean_name, clean_notes, clean_time

router = APIRouter(tags=['dentists'])
logger = logging.getLogger(__name__)

require_dentist = require_roles('dentist')

STATUS_NOTIFICATIONS = {
    'confirmed': NotificationKind.APPROVED_TO_PATIENT,
    'completed': NotificationKind.COMPLETED_THANK_YOU,
    'no-show': NotificationKind.NO_SHOW_RESCHEDULE,
    'cancelled': NotificationKind.CANCELLATION_CONFIRMATION,
}


class UpdateDentistProfileRequest(BaseModel):
    name: str | None = None
    specialization: list[str] | None = None
    experience: int | None = None
    education: list[str] | None = None
    bio: str | None = None
    consultation_fee: float | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        return None if value is None else clean_name(value)

    @field_validator('specialization')
    @classmethod
    def validate_specialization(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        unknown = [item for item in value if item not in SPECIALIZATIONS]
        if unknown:
            raise ValueError(f'Unknown specialization: {", ".join(unknown)}.')
        return value

    @field_validator('experience')
    @classmethod
    def validate_experience(cls, value: int | None) -> int | None:
        if value is not None and not 0 <= value <= 50:
            raise ValueError('Experience must be between 0 and 50 years.')
        return value

    @field_validator('bio')
    @classmethod
    def validate_bio(cls, value: str | None) -> str | None:
        if value is not None and len(value) > 1000:
            raise ValueError('Bio cannot exceed 1000 characters.')
        return value

    @field_validator('consultation_fee')
    @classmethod
    def validate_fee(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError('Consultation fee must be a positive number.')
        return value


class WorkingDayRequest(BaseModel):
    start: str | None = None
    end: str | None = None
    is_working: bool = False


class WorkingHoursRequest(BaseModel):
    working_hours: dict[str, WorkingDayRequest]


class WorkingDayResponse(BaseModel):
    start: str
    end: str
    is_working: bool


class OverrideSlot(BaseModel):
    start: str
    end: str
    is_available: bool = True


class OverrideRequest(BaseModel):
    slots: list[OverrideSlot]


class DayOverrideResponse(BaseModel):
    date: date
    slots: list[OverrideSlot]


class DentistAppointmentRequest(BaseModel):
    patient_id: int
    service_id: int
    date: date
    time: str
    duration: int | None = None
    notes: str | None = None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return clean_time(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return check_duration(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str:
        return clean_notes(value)


class UpdateAppointmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_date: date | None = Field(default=None, alias='date')
    time: str | None = None
    duration: int | None = None
    notes: str | None = None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return None if value is None else clean_time(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return check_duration(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return None if value is None else clean_notes(value)


class UpdateStatusRequest(BaseModel):
    status: str
    cancellation_reason: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized


def get_own_profile(db: Session, user: User) -> Dentist:
    dentist = db.query(Dentist).filter(Dentist.user_id == user.id).first()
    if dentist is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Dentist profile not found')
    return dentist


def get_dentist_appointment(db: Session, appointment_id: int, dentist_id: int) -> Appointment:
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.dentist_id == dentist_id)
        .first()
    )
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Appointment not found')
    return appointment


def get_patient_user(db: Session, patient_id: int) -> User:
    patient = (
        db.query(User)
        .filter(User.id == patient_id, User.role == 'patient', User.is_active.is_(True))
        .first()
    )
    if patient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Patient not found')
    return patient


def _working_hours_response(db: Session, dentist_id: int) -> dict[str, WorkingDayResponse]:
    hours = get_working_hours(db, dentist_id)
    return {day: WorkingDayResponse(**hours[day]) for day in WEEKDAYS}


@router.get('/profile', response_model=DentistSummaryResponse)
def get_profile(current_user: User = Depends(require_dentist), db: Session = Depends(get_db)):
    return dentist_summary(get_own_profile(db, current_user))


@router.put('/profile', response_model=DentistSummaryResponse)
def update_profile(
    payload: UpdateDentistProfileRequest,
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
):
    dentist = get_own_profile(db, current_user)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if 'name' in changes:
        dentist.user.name = changes.pop('name')
    for field, value in changes.items():
        setattr(dentist, field, value)

    db.commit()
    db.refresh(dentist)
    return dentist_summary(dentist)


@router.get('/working-hours', response_model=dict[str, WorkingDayResponse])
def get_my_working_hours(current_user: User = Depends(require_dentist), db: Session = Depends(get_db)):
    return _working_hours_response(db, current_user.id)


@router.put('/working-hours', response_model=dict[str, WorkingDayResponse])
def update_working_hours(
    payload: WorkingHoursRequest,
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
):
    validated = validate_working_hours(
        {day: entry.model_dump() for day, entry in payload.working_hours.items()}
    )

    existing = {
        row.day: row
        for row in db.query(WorkingHours).filter(WorkingHours.dentist_id == current_user.id).all()
    }
    for day, values in validated.items():
        row = existing.get(day)
        if row is None:
            db.add(WorkingHours(dentist_id=current_user.id, day=day, **values))
        else:
            row.start = values['start']
            row.end = values['end']
            row.is_working = values['is_working']

    db.commit()
    logger.info('Dentist %s updated working hours', current_user.id)
    return _working_hours_response(db, current_user.id)


@router.get('/availability', response_model=list[DayOverrideResponse])
def list_availability_overrides(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
):
    query = db.query(AvailabilityOverride).filter(AvailabilityOverride.dentist_id == current_user.id)
    if start_date is not None:
        query = query.filter(AvailabilityOverride.date >= start_date)
    if end_date is not None:
        query = query.filter(AvailabilityOverride.date <= end_date)

    grouped: dict[date, list[OverrideSlot]] = {}
    for row in query.order_by(AvailabilityOverride.date, AvailabilityOverride.start).all():
        grouped.setdefault(row.date, []).append(
            OverrideSlot(start=row.start, end=row.end, is_available=row.is_available)
        )
    return [DayOverrideResponse(date=day, slots=slots) for day, slots in grouped.items()]


@router.put('/availability/{override_date}', response_model=DayOverrideResponse)
def set_availability_override(
    override_date: date,
    payload: OverrideRequest,
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
    now: datetime = Depends(current_time),
):
    if override_date < now.date():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Cannot set availability for a past date')
    if not payload.slots:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='At least one time slot is required')

    slots = []
    for index, slot in enumerate(payload.slots, start=1):
        start, end = validate_time_window(f'slot {index}', slot.start, slot.end)
        slots.append(OverrideSlot(start=start, end=end, is_available=slot.is_available))

    db.query(AvailabilityOverride).filter(
        AvailabilityOverride.dentist_id == current_user.id,
        AvailabilityOverride.date == override_date,
    ).delete(synchronize_session=False)
    for slot in slots:
        db.add(AvailabilityOverride(dentist_id=current_user.id, date=override_date, **slot.model_dump()))
    db.commit()

    logger.info('Dentist %s set %s availability slots for %s', current_user.id, len(slots), override_date)
    return DayOverrideResponse(date=override_date, slots=sorted(slots, key=lambda slot: slot.start))


@router.delete('/availability/{override_date}')
def clear_availability_override(
    override_date: date,
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
) -> dict:
    deleted = db.query(AvailabilityOverride).filter(
        AvailabilityOverride.dentist_id == current_user.id,
        AvailabilityOverride.date == override_date,
    ).delete(synchronize_session=False)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No availability override for this date')

    db.commit()
    return {'message': 'Availability override removed'}


@router.get('/patients', response_model=PatientListResponse)
def list_my_patients(
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
) -> PatientListResponse:
    last_visit = func.max(case((Appointment.status == 'completed', Appointment.date), else_=None))
    query = (
        db.query(
            User,
            Patient,
            func.count(Appointment.id).label('total_appointments'),
            last_visit.label('last_visit'),
        )
        .join(Appointment, Appointment.patient_id == User.id)
        .outerjoin(Patient, Patient.user_id == User.id)
        .filter(Appointment.dentist_id == current_user.id)
        .group_by(User.id, Patient.id)
    )
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    rows, pagination = paginate(query.order_by(User.name), page, limit)
    patients = [
        patient_summary(user, patient, total_appointments=total, last_visit=visit)
        for user, patient, total, visit in rows
    ]
    return PatientListResponse(patients=patients, pagination=pagination)


@router.get('/all-patients', response_model=PatientListResponse)
def list_all_patients(
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
) -> PatientListResponse:
    query = (
        db.query(User, Patient)
        .outerjoin(Patient, Patient.user_id == User.id)
        .filter(User.role == 'patient', User.is_active.is_(True))
    )
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern), Patient.phone.ilike(pattern)))

    rows, pagination = paginate(query.order_by(User.name), page, limit)
    patients = [patient_summary(user, patient) for user, patient in rows]
    return PatientListResponse(patients=patients, pagination=pagination)


@router.get('/services', response_model=list[DentistServiceResponse])
def list_my_services(current_user: User = Depends(require_dentist), db: Session = Depends(get_db)):
    return (
        db.query(DentistService)
        .filter(DentistService.dentist_id == current_user.id)
        .order_by(DentistService.id)
        .all()
    )


@router.get('/appointments', response_model=AppointmentListResponse)
def list_appointments(
    appointment_date: date | None = Query(default=None, alias='date'),
    status_filter: str | None = Query(default=None, alias='status'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
) -> AppointmentListResponse:
    query = db.query(Appointment).filter(Appointment.dentist_id == current_user.id)
    if appointment_date is not None:
        query = query.filter(Appointment.date == appointment_date)
    if status_filter:
        if status_filter not in APPOINTMENT_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid appointment status')
        query = query.filter(Appointment.status == status_filter)

    appointments, pagination = paginate(query.order_by(Appointment.date, Appointment.time), page, limit)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
        pagination=pagination,
    )


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: DentistAppointmentRequest,
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    get_patient_user(db, payload.patient_id)
    service = get_active_service(db, payload.service_id)

    offering = get_offering(db, current_user.id, service.id)
    if offering is None or not offering.is_offered:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Service not available for this dentist')

    appointment = Appointment(
        patient_id=payload.patient_id,
        dentist_id=current_user.id,
        service_id=service.id,
        date=payload.date,
        time=payload.time,
        duration=payload.duration or resolve_duration(db, current_user.id, service),
        status='scheduled',
        notes=payload.notes or '',
        created_by=current_user.id,
    )
    appointment = save_booking(db, appointment, duplicate_detail=DENTIST_DUPLICATE_DETAIL)
    return AppointmentResponse.model_validate(appointment)


@router.put('/appointments/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    payload: UpdateAppointmentRequest,
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = get_dentist_appointment(db, appointment_id, current_user.id)
    if is_terminal(appointment.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Cannot update an appointment that is {appointment.status}.',
        )

    moved = (payload.appointment_date is not None and payload.appointment_date != appointment.date) or (
        payload.time is not None and payload.time != appointment.time
    )
    if payload.appointment_date is not None:
        appointment.date = payload.appointment_date
    if payload.time is not None:
        appointment.time = payload.time
    if payload.duration is not None:
        appointment.duration = payload.duration
    if payload.notes is not None:
        appointment.notes = payload.notes

    if moved:
        appointment = save_booking(db, appointment, duplicate_detail=DENTIST_DUPLICATE_DETAIL)
    else:
        db.commit()
        db.refresh(appointment)
    return AppointmentResponse.model_validate(appointment)


@router.put('/appointments/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    payload: UpdateStatusRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_dentist),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(current_time),
) -> AppointmentResponse:
    appointment = get_dentist_appointment(db, appointment_id, current_user.id)
    previous_status = appointment.status
    ensure_transition_allowed(previous_status, payload.status)

    appointment.status = payload.status
    if payload.status == 'cancelled':
        appointment.cancelled_by = 'dentist'
        appointment.cancelled_at = now
        appointment.cancellation_reason = payload.cancellation_reason
    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s moved from %s to %s', appointment.id, previous_status, appointment.status)

    kind = STATUS_NOTIFICATIONS.get(appointment.status)
    if kind is not None:
        context = appointment_context(appointment)
        if kind is NotificationKind.CANCELLATION_CONFIRMATION:
            context['cancelled_by'] = 'dentist'
        queue_notification(background_tasks, notifier, kind, appointment.patient.email, context)
    return AppointmentResponse.model_validate(appointment)
