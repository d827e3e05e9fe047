from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from dental_office.database import get_db
from dental_office.models.dentist import Dentist
from dental_office.models.service import DentistService, Service
from dental_office.models.user import User
from dental_office.scheduling.availability import (
    DayAvailabilityResponse,
    get_dentist_profile,
    resolve_day,
    resolve_range,
)
from dental_office.schemas.service import ServiceResponse
from dental_office.schemas.user import DentistSummaryResponse, dentist_summary

router = APIRouter(tags=['public'])


class DoctorAvailabilityResponse(BaseModel):
    dentist_id: int
    dentist_name: str
    start_date: date
    end_date: date
    days: list[DayAvailabilityResponse]


class AvailableSlotsResponse(DayAvailabilityResponse):
    dentist_id: int


def list_active_dentists(
    db: Session,
    specialization: str | None = None,
    service_id: int | None = None,
) -> list[DentistSummaryResponse]:
    query = (
        db.query(Dentist)
        .join(User, User.id == Dentist.user_id)
        .filter(Dentist.is_active.is_(True), User.is_active.is_(True))
    )
    if service_id is not None:
        query = query.join(DentistService, DentistService.dentist_id == Dentist.user_id).filter(
            DentistService.service_id == service_id,
            DentistService.is_offered.is_(True),
        )

    dentists = query.order_by(Dentist.rating.desc(), User.name).all()
    if specialization:
        dentists = [dentist for dentist in dentists if specialization in (dentist.specialization or [])]
    return [dentist_summary(dentist) for dentist in dentists]


def list_active_services(db: Session, category: str | None = None) -> list[Service]:
    query = db.query(Service).filter(Service.is_active.is_(True))
    if category:
        query = query.filter(Service.category == category)
    return query.order_by(Service.category, Service.name).all()


def doctor_availability(
    db: Session,
    dentist_id: int | None,
    start_date: date | None,
    end_date: date | None = None,
) -> DoctorAvailabilityResponse:
    if dentist_id is None or start_date is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Dentist ID and start date are required',
        )

    dentist = get_dentist_profile(db, dentist_id)
    days = resolve_range(db, dentist_id, start_date, end_date)
    return DoctorAvailabilityResponse(
        dentist_id=dentist_id,
        dentist_name=dentist.user.name,
        start_date=days[0].date,
        end_date=days[-1].date,
        days=days,
    )


def available_slots(db: Session, dentist_id: int | None, day: date | None) -> AvailableSlotsResponse:
    if dentist_id is None or day is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Dentist ID and date are required')

    get_dentist_profile(db, dentist_id)
    resolved = resolve_day(db, dentist_id, day)
    return AvailableSlotsResponse(dentist_id=dentist_id, **resolved.model_dump())


@router.get('/dentists', response_model=list[DentistSummaryResponse])
def get_dentists(
    specialization: str | None = Query(default=None),
    service_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return list_active_dentists(db, specialization, service_id)


@router.get('/services', response_model=list[ServiceResponse])
def get_services(category: str | None = Query(default=None), db: Session = Depends(get_db)):
    return list_active_services(db, category)


@router.get('/doctor-availability', response_model=DoctorAvailabilityResponse)
def get_doctor_availability(
    dentist_id: int | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return doctor_availability(db, dentist_id, start_date, end_date)


@router.get('/available-slots', response_model=AvailableSlotsResponse)
def get_available_slots(
    dentist_id: int | None = Query(default=None),
    date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return available_slots(db, dentist_id, date)
