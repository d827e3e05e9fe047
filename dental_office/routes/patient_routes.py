import logging
from datetime import date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from dental_office.auth.dependencies import require_roles
from dental_office.core.pagination import DEFAULT_LIMIT, MAX_LIMIT, paginate
from dental_office.database import get_db
from dental_office.models.appointment import APPOINTMENT_STATUSES, Appointment
from dental_office.models.user import User
from dental_office.notifications.email_service import (
    NotificationKind,
    Notifier,
    appointment_context,
    get_notifier,
    queue_notification,
)
from dental_office.routes import auth_routes, public_routes
from dental_office.scheduling.availability import get_dentist_profile, resolve_day, slot_fits
from dental_office.scheduling.booking import (
    ensure_future_slot,
    get_active_service,
    get_offering,
    resolve_duration,
    save_booking,
)
from dental_office.scheduling.status import current_time, ensure_patient_can_modify, ensure_transition_allowed
from dental_office.schemas.appointment import AppointmentListResponse, AppointmentResponse
from dental_office.schemas.service import ServiceResponse
from dental_office.schemas.user import AccountResponse, DentistSummaryResponse
from dental_office.schemas.validators import clean_notes, clean_time

router = APIRouter(tags=['patients'])
logger = logging.getLogger(__name__)

require_patient = require_roles('patient')


class BookAppointmentRequest(BaseModel):
    dentist_id: int
    service_id: int
    date: date
    time: str
    notes: str | None = None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return clean_time(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str:
        return clean_notes(value)


class RescheduleAppointmentRequest(BaseModel):
    date: date
    time: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return clean_time(value)


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > 200:
            raise ValueError('Cancellation reason cannot exceed 200 characters.')
        return normalized or None


def get_patient_appointment(db: Session, appointment_id: int, patient_id: int) -> Appointment:
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.patient_id == patient_id)
        .first()
    )
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Appointment not found')
    return appointment


def ensure_bookable_slot(
    db: Session,
    dentist_id: int,
    day: date,
    time_value: str,
    duration: int,
    now: datetime,
    exclude_appointment_id: int | None = None,
) -> None:
    ensure_future_slot(day, time_value, now)

    resolved = resolve_day(db, dentist_id, day, exclude_appointment_id=exclude_appointment_id)
    if resolved.status == 'unavailable':
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=resolved.reason or 'Dentist is unavailable on this date',
        )
    if not slot_fits(resolved, time_value, duration):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Selected time is outside the dentist\'s available hours',
        )


@router.get('/profile', response_model=AccountResponse)
def get_profile(current_user: User = Depends(require_patient), db: Session = Depends(get_db)):
    return auth_routes.build_account(db, current_user)


@router.put('/profile', response_model=AccountResponse)
def update_profile(
    payload: auth_routes.UpdateProfileRequest,
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    return auth_routes.update_profile(payload, current_user=current_user, db=db)


@router.get('/appointments', response_model=AppointmentListResponse)
def list_my_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    upcoming: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
    now: datetime = Depends(current_time),
) -> AppointmentListResponse:
    query = db.query(Appointment).filter(Appointment.patient_id == current_user.id)
    if status_filter:
        if status_filter not in APPOINTMENT_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid appointment status')
        query = query.filter(Appointment.status == status_filter)
    if upcoming:
        query = query.filter(Appointment.date >= now.date())

    appointments, pagination = paginate(
        query.order_by(Appointment.date.desc(), Appointment.time.desc()),
        page,
        limit,
    )
    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
        pagination=pagination,
    )


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    payload: BookAppointmentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(current_time),
) -> AppointmentResponse:
    get_dentist_profile(db, payload.dentist_id)
    service = get_active_service(db, payload.service_id)

    offering = get_offering(db, payload.dentist_id, service.id)
    if offering is None or not offering.is_offered:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Dentist does not offer this service')

    duration = resolve_duration(db, payload.dentist_id, service)
    ensure_bookable_slot(db, payload.dentist_id, payload.date, payload.time, duration, now)

    appointment = Appointment(
        patient_id=current_user.id,
        dentist_id=payload.dentist_id,
        service_id=service.id,
        date=payload.date,
        time=payload.time,
        duration=duration,
        status='pending',
        notes=payload.notes or '',
        created_by=current_user.id,
    )
    appointment = save_booking(db, appointment)

    queue_notification(
        background_tasks,
        notifier,
        NotificationKind.NEW_APPOINTMENT_TO_DENTIST,
        appointment.dentist.email,
        appointment_context(appointment),
    )
    return AppointmentResponse.model_validate(appointment)


@router.patch('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    payload: CancelAppointmentRequest | None = None,
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(current_time),
) -> AppointmentResponse:
    appointment = get_patient_appointment(db, appointment_id, current_user.id)
    ensure_patient_can_modify(appointment, 'cancel', now)
    ensure_transition_allowed(appointment.status, 'cancelled')

    appointment.status = 'cancelled'
    appointment.cancelled_by = 'patient'
    appointment.cancelled_at = now
    appointment.cancellation_reason = payload.reason if payload else None
    db.commit()
    db.refresh(appointment)
    logger.info('Patient %s cancelled appointment %s', current_user.id, appointment.id)

    queue_notification(
        background_tasks,
        notifier,
        NotificationKind.CANCELLATION_CONFIRMATION,
        current_user.email,
        {**appointment_context(appointment), 'cancelled_by': 'patient'},
    )
    return AppointmentResponse.model_validate(appointment)


@router.patch('/appointments/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    payload: RescheduleAppointmentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    now: datetime = Depends(current_time),
) -> AppointmentResponse:
    appointment = get_patient_appointment(db, appointment_id, current_user.id)
    ensure_patient_can_modify(appointment, 'reschedule', now)
    ensure_bookable_slot(
        db,
        appointment.dentist_id,
        payload.date,
        payload.time,
        appointment.duration,
        now,
        exclude_appointment_id=appointment.id,
    )

    previous = {'previous_date': appointment.date.isoformat(), 'previous_time': appointment.time}
    appointment.date = payload.date
    appointment.time = payload.time
    appointment.status = 'pending'
    appointment = save_booking(db, appointment)

    context = {**appointment_context(appointment), **previous}
    queue_notification(
        background_tasks,
        notifier,
        NotificationKind.RESCHEDULE_NOTIFICATION_TO_DENTIST,
        appointment.dentist.email,
        context,
    )
    queue_notification(
        background_tasks,
        notifier,
        NotificationKind.RESCHEDULE_CONFIRMATION_TO_PATIENT,
        current_user.email,
        context,
    )
    return AppointmentResponse.model_validate(appointment)


@router.get('/dentists', response_model=list[DentistSummaryResponse])
def get_dentists(
    specialization: str | None = Query(default=None),
    service_id: int | None = Query(default=None),
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    return public_routes.list_active_dentists(db, specialization, service_id)


@router.get('/services', response_model=list[ServiceResponse])
def get_services(
    category: str | None = Query(default=None),
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    return public_routes.list_active_services(db, category)


@router.get('/doctor-availability', response_model=public_routes.DoctorAvailabilityResponse)
def get_doctor_availability(
    dentist_id: int | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    return public_routes.doctor_availability(db, dentist_id, start_date, end_date)


@router.get('/available-slots', response_model=public_routes.AvailableSlotsResponse)
def get_available_slots(
    dentist_id: int | None = Query(default=None),
    date: date | None = Query(default=None),
    current_user: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    return public_routes.available_slots(db, dentist_id, date)
