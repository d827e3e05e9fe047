import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from dental_office.auth.dependencies import require_roles
from dental_office.auth.passwords import get_password_hash
from dental_office.core.pagination import DEFAULT_LIMIT, MAX_LIMIT, PaginationResponse, paginate
from dental_office.database import get_db
from dental_office.models.appointment import Appointment
from dental_office.models.availability import AvailabilityOverride
from dental_office.models.dentist import SPECIALIZATIONS, Dentist, WorkingHours
from dental_office.models.patient import Patient
from dental_office.models.service import SERVICE_CATEGORIES, DentistService, Service
from dental_office.models.user import USER_ROLES, User
from dental_office.routes.auth_routes import build_account, ensure_email_available
from dental_office.scheduling.working_hours import seed_default_working_hours
from dental_office.schemas.service import DentistServiceResponse, ServiceResponse
from dental_office.schemas.user import (
    AccountResponse,
    DentistSummaryResponse,
    PatientListResponse,
    UserResponse,
    dentist_summary,
    patient_summary,
)
from dental_office.schemas.validators import check_duration, check_password, clean_name

router = APIRouter(tags=['admin'])
logger = logging.getLogger(__name__)

require_admin = require_roles('admin')


def _check_specialization(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    unknown = [item for item in value if item not in SPECIALIZATIONS]
    if unknown:
        raise ValueError(f'Unknown specialization: {", ".join(unknown)}.')
    return value


def _check_license(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not 3 <= len(normalized) <= 50:
        raise ValueError('License number must be between 3 and 50 characters.')
    return normalized


class UserStatsResponse(BaseModel):
    total: int
    patients: int
    dentists: int
    admins: int
    active: int
    inactive: int


class UserListResponse(BaseModel):
    users: list[UserResponse]
    pagination: PaginationResponse


class DentistListResponse(BaseModel):
    dentists: list[DentistSummaryResponse]
    pagination: PaginationResponse


class UpdateRoleRequest(BaseModel):
    role: str

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in USER_ROLES:
            raise ValueError('Role must be patient, dentist, or admin.')
        return normalized


class CreateDentistRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    license_number: str
    specialization: list[str] = ['General Dentistry']
    experience: int = 0
    education: list[str] = []
    bio: str = ''
    consultation_fee: float = 0

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return clean_name(value)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password(value)

    @field_validator('license_number')
    @classmethod
    def validate_license(cls, value: str) -> str:
        return _check_license(value)

    @field_validator('specialization')
    @classmethod
    def validate_specialization(cls, value: list[str]) -> list[str]:
        return _check_specialization(value)

    @field_validator('experience')
    @classmethod
    def validate_experience(cls, value: int) -> int:
        if not 0 <= value <= 50:
            raise ValueError('Experience must be between 0 and 50 years.')
        return value

    @field_validator('consultation_fee')
    @classmethod
    def validate_fee(cls, value: float) -> float:
        if value < 0:
            raise ValueError('Consultation fee must be a positive number.')
        return value


class UpdateDentistRequest(BaseModel):
    name: str | None = None
    license_number: str | None = None
    specialization: list[str] | None = None
    experience: int | None = None
    education: list[str] | None = None
    bio: str | None = None
    consultation_fee: float | None = None
    is_active: bool | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        return None if value is None else clean_name(value)

    @field_validator('license_number')
    @classmethod
    def validate_license(cls, value: str | None) -> str | None:
        return _check_license(value)

    @field_validator('specialization')
    @classmethod
    def validate_specialization(cls, value: list[str] | None) -> list[str] | None:
        return _check_specialization(value)


class ServiceRequest(BaseModel):
    name: str
    description: str
    category: str
    default_duration: int
    default_price: float
    is_active: bool = True

    @field_validator('name', 'description')
    @classmethod
    def validate_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Value cannot be empty.')
        return normalized

    @field_validator('category')
    @classmethod
    def validate_category(cls, value: str) -> str:
        if value not in SERVICE_CATEGORIES:
            raise ValueError(f'Category must be one of: {", ".join(SERVICE_CATEGORIES)}.')
        return value

    @field_validator('default_duration')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        return check_duration(value)

    @field_validator('default_price')
    @classmethod
    def validate_price(cls, value: float) -> float:
        if value < 0:
            raise ValueError('Price must be a positive number.')
        return value


class UpdateServiceRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    category: str | None = None
    default_duration: int | None = None
    default_price: float | None = None
    is_active: bool | None = None

    @field_validator('category')
    @classmethod
    def validate_category(cls, value: str | None) -> str | None:
        if value is not None and value not in SERVICE_CATEGORIES:
            raise ValueError(f'Category must be one of: {", ".join(SERVICE_CATEGORIES)}.')
        return value

    @field_validator('default_duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return check_duration(value)

    @field_validator('default_price')
    @classmethod
    def validate_price(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError('Price must be a positive number.')
        return value


class AssignServiceRequest(BaseModel):
    dentist_id: int
    service_id: int
    custom_price: float | None = None
    custom_duration: int | None = None
    is_offered: bool = True
    notes: str = ''

    @field_validator('custom_duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return check_duration(value)

    @field_validator('custom_price')
    @classmethod
    def validate_price(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError('Price must be a positive number.')
        return value


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found')
    return user


def get_dentist_or_404(db: Session, dentist_id: int) -> Dentist:
    dentist = db.query(Dentist).filter(Dentist.user_id == dentist_id).first()
    if dentist is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Dentist not found')
    return dentist


def get_service_or_404(db: Session, service_id: int) -> Service:
    service = db.query(Service).filter(Service.id == service_id).first()
    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service not found')
    return service


def ensure_license_available(db: Session, license_number: str, exclude_dentist_id: int | None = None) -> None:
    query = db.query(Dentist).filter(Dentist.license_number == license_number)
    if exclude_dentist_id is not None:
        query = query.filter(Dentist.user_id != exclude_dentist_id)
    if query.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='License number already exists')


def ensure_service_name_available(db: Session, name: str, exclude_id: int | None = None) -> None:
    query = db.query(Service).filter(func.lower(Service.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Service.id != exclude_id)
    if query.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Service with this name already exists')


def delete_account(db: Session, user: User) -> None:
    """Remove a user and its role profile. Accounts with appointment history are kept."""
    has_history = (
        db.query(Appointment.id)
        .filter(or_(Appointment.patient_id == user.id, Appointment.dentist_id == user.id))
        .first()
    )
    if has_history is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='User has appointment history; deactivate the account instead',
        )

    if user.role == 'patient':
        db.query(Patient).filter(Patient.user_id == user.id).delete(synchronize_session=False)
    elif user.role == 'dentist':
        db.query(DentistService).filter(DentistService.dentist_id == user.id).delete(synchronize_session=False)
        db.query(WorkingHours).filter(WorkingHours.dentist_id == user.id).delete(synchronize_session=False)
        db.query(AvailabilityOverride).filter(
            AvailabilityOverride.dentist_id == user.id
        ).delete(synchronize_session=False)
        db.query(Dentist).filter(Dentist.user_id == user.id).delete(synchronize_session=False)

    db.delete(user)
    db.commit()
    logger.info('Deleted %s account %s', user.role, user.id)


@router.get('/users/stats', response_model=UserStatsResponse)
def get_user_stats(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    counts = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    active = db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0
    total = sum(counts.values())
    return UserStatsResponse(
        total=total,
        patients=counts.get('patient', 0),
        dentists=counts.get('dentist', 0),
        admins=counts.get('admin', 0),
        active=active,
        inactive=total - active,
    )


@router.get('/users', response_model=UserListResponse)
def list_users(
    role: str = Query(default='all'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserListResponse:
    if role != 'all' and role not in USER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Role must be patient, dentist, admin, or all',
        )

    query = db.query(User)
    if role != 'all':
        query = query.filter(User.role == role)

    users, pagination = paginate(query.order_by(User.created_at.desc(), User.id.desc()), page, limit)
    return UserListResponse(users=[UserResponse.model_validate(user) for user in users], pagination=pagination)


@router.get('/users/{user_id}', response_model=AccountResponse)
def get_user(user_id: int, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    return build_account(db, get_user_or_404(db, user_id))


@router.put('/users/{user_id}/role', response_model=UserResponse)
def update_user_role(
    user_id: int,
    payload: UpdateRoleRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='You cannot change your own role')

    user = get_user_or_404(db, user_id)
    user.role = payload.role
    db.commit()
    db.refresh(user)
    logger.info('Admin %s set role of user %s to %s', current_user.id, user.id, user.role)
    return user


@router.delete('/users/{user_id}')
def delete_user(user_id: int, current_user: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='You cannot delete your own account')

    delete_account(db, get_user_or_404(db, user_id))
    return {'message': 'User deleted successfully'}


@router.get('/dentists', response_model=DentistListResponse)
def list_dentists(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> DentistListResponse:
    query = db.query(Dentist).join(User, User.id == Dentist.user_id).order_by(User.name)
    dentists, pagination = paginate(query, page, limit)
    return DentistListResponse(dentists=[dentist_summary(dentist) for dentist in dentists], pagination=pagination)


@router.post('/dentists', response_model=DentistSummaryResponse, status_code=status.HTTP_201_CREATED)
def create_dentist(
    payload: CreateDentistRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_email_available(db, payload.email)
    ensure_license_available(db, payload.license_number)

    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role='dentist',
    )
    db.add(user)
    db.flush()

    dentist = Dentist(
        user_id=user.id,
        license_number=payload.license_number,
        specialization=payload.specialization,
        experience=payload.experience,
        education=payload.education,
        bio=payload.bio,
        consultation_fee=payload.consultation_fee,
    )
    db.add(dentist)
    seed_default_working_hours(db, user.id)
    db.commit()
    db.refresh(dentist)

    logger.info('Admin %s created dentist %s', current_user.id, user.id)
    return dentist_summary(dentist)


@router.put('/dentists/{dentist_id}', response_model=DentistSummaryResponse)
def update_dentist(
    dentist_id: int,
    payload: UpdateDentistRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    dentist = get_dentist_or_404(db, dentist_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if 'license_number' in changes:
        ensure_license_available(db, changes['license_number'], exclude_dentist_id=dentist_id)
    if 'name' in changes:
        dentist.user.name = changes.pop('name')
    for field, value in changes.items():
        setattr(dentist, field, value)

    db.commit()
    db.refresh(dentist)
    return dentist_summary(dentist)


@router.delete('/dentists/{dentist_id}')
def delete_dentist(dentist_id: int, current_user: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    user = get_user_or_404(db, dentist_id)
    if user.role != 'dentist':
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Dentist not found')

    delete_account(db, user)
    return {'message': 'Dentist deleted successfully'}


@router.get('/patients', response_model=PatientListResponse)
def list_patients(
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PatientListResponse:
    query = db.query(User, Patient).outerjoin(Patient, Patient.user_id == User.id).filter(User.role == 'patient')
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    rows, pagination = paginate(query.order_by(User.name), page, limit)
    return PatientListResponse(
        patients=[patient_summary(user, patient) for user, patient in rows],
        pagination=pagination,
    )


@router.get('/services', response_model=list[ServiceResponse])
def list_services(
    category: str | None = Query(default=None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Service)
    if category:
        query = query.filter(Service.category == category)
    return query.order_by(Service.category, Service.name).all()


@router.post('/services', response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    payload: ServiceRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_service_name_available(db, payload.name)

    service = Service(**payload.model_dump())
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info('Admin %s created service %s', current_user.id, service.id)
    return service


@router.put('/services/{service_id}', response_model=ServiceResponse)
def update_service(
    service_id: int,
    payload: UpdateServiceRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = get_service_or_404(db, service_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if 'name' in changes:
        changes['name'] = changes['name'].strip()
        ensure_service_name_available(db, changes['name'], exclude_id=service_id)
    for field, value in changes.items():
        setattr(service, field, value)

    db.commit()
    db.refresh(service)
    return service


@router.delete('/services/{service_id}')
def delete_service(service_id: int, current_user: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    service = get_service_or_404(db, service_id)

    if db.query(DentistService.id).filter(DentistService.service_id == service_id).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot delete service that is assigned to dentists',
        )
    if db.query(Appointment.id).filter(Appointment.service_id == service_id).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot delete service that has appointments',
        )

    db.delete(service)
    db.commit()
    return {'message': 'Service deleted successfully'}


@router.post('/services/assign', response_model=DentistServiceResponse, status_code=status.HTTP_201_CREATED)
def assign_service(
    payload: AssignServiceRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    get_dentist_or_404(db, payload.dentist_id)
    service = get_service_or_404(db, payload.service_id)

    existing = (
        db.query(DentistService)
        .filter(DentistService.dentist_id == payload.dentist_id, DentistService.service_id == service.id)
        .first()
    )
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Service already assigned to this dentist')

    offering = DentistService(
        dentist_id=payload.dentist_id,
        service_id=service.id,
        custom_price=service.default_price if payload.custom_price is None else payload.custom_price,
        custom_duration=payload.custom_duration or service.default_duration,
        is_offered=payload.is_offered,
        notes=payload.notes,
    )
    db.add(offering)
    db.commit()
    db.refresh(offering)
    logger.info('Assigned service %s to dentist %s', service.id, payload.dentist_id)
    return offering


@router.get('/dentists/{dentist_id}/services', response_model=list[DentistServiceResponse])
def list_dentist_services(
    dentist_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    get_dentist_or_404(db, dentist_id)
    return (
        db.query(DentistService)
        .filter(DentistService.dentist_id == dentist_id)
        .order_by(DentistService.id)
        .all()
    )


@router.delete('/dentists/{dentist_id}/services/{service_id}')
def remove_dentist_service(
    dentist_id: int,
    service_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    deleted = db.query(DentistService).filter(
        DentistService.dentist_id == dentist_id,
        DentistService.service_id == service_id,
    ).delete(synchronize_session=False)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service assignment not found')

    db.commit()
    return {'message': 'Service removed from dentist'}
