from datetime import date, datetime

from pydantic import BaseModel

from dental_office.core.pagination import PaginationResponse


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class PatientProfileResponse(BaseModel):
    user_id: int
    birthdate: date
    gender: str
    phone: str
    address: str

    class Config:
        from_attributes = True


class DentistProfileResponse(BaseModel):
    user_id: int
    license_number: str
    specialization: list[str]
    experience: int
    education: list[str]
    bio: str
    consultation_fee: float
    rating: float
    total_reviews: int
    is_active: bool

    class Config:
        from_attributes = True


class DentistSummaryResponse(DentistProfileResponse):
    name: str
    email: str


class AccountResponse(BaseModel):
    user: UserResponse
    patient: PatientProfileResponse | None = None
    dentist: DentistProfileResponse | None = None


class PatientSummaryResponse(BaseModel):
    user_id: int
    name: str
    email: str
    is_active: bool = True
    phone: str | None = None
    gender: str | None = None
    birthdate: date | None = None
    address: str | None = None
    total_appointments: int = 0
    last_visit: date | None = None


class PatientListResponse(BaseModel):
    patients: list[PatientSummaryResponse]
    pagination: PaginationResponse


def dentist_summary(dentist) -> DentistSummaryResponse:
    return DentistSummaryResponse(
        name=dentist.user.name,
        email=dentist.user.email,
        **DentistProfileResponse.model_validate(dentist).model_dump(),
    )


def patient_summary(user, patient=None, **extra) -> PatientSummaryResponse:
    return PatientSummaryResponse(
        user_id=user.id,
        name=user.name,
        email=user.email,
        is_active=user.is_active,
        phone=patient.phone if patient else None,
        gender=patient.gender if patient else None,
        birthdate=patient.birthdate if patient else None,
        address=patient.address if patient else None,
        **extra,
    )
