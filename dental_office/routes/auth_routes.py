import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from jwt import PyJWTError
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dental_office.auth import jwt_handler
from dental_office.auth.dependencies import get_current_user
from dental_office.auth.passwords import get_password_hash, verify_password
from dental_office.database import get_db
from dental_office.models.dentist import Dentist
from dental_office.models.patient import Patient
from dental_office.models.user import User
from dental_office.schemas.user import (
    AccountResponse,
    DentistProfileResponse,
    PatientProfileResponse,
    UserResponse,
)
from dental_office.schemas.validators import check_password, clean_name, clean_phone

router = APIRouter(tags=['auth'])
logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: str
    birthdate: date
    gender: Literal['male', 'female', 'other']
    address: str

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

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        return clean_phone(value)

    @field_validator('birthdate')
    @classmethod
    def validate_birthdate(cls, value: date) -> date:
        if value >= date.today():
            raise ValueError('Please provide a valid date of birth.')
        return value

    @field_validator('address')
    @classmethod
    def validate_address(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Address cannot be empty.')
        return normalized


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class RefreshRequest(BaseModel):
    refresh_token: str


class UpdateProfileRequest(BaseModel):
    name: str | None = None
    phone: str | None = None
    address: str | None = None
    birthdate: date | None = None
    gender: Literal['male', 'female', 'other'] | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        return None if value is None else clean_name(value)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str | None) -> str | None:
        return None if value is None else clean_phone(value)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return check_password(value)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'
    user: UserResponse


def issue_tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=jwt_handler.create_access_token(str(user.id), user.role),
        refresh_token=jwt_handler.create_refresh_token(str(user.id)),
        user=UserResponse.model_validate(user),
    )


def build_account(db: Session, user: User) -> AccountResponse:
    account = AccountResponse(user=UserResponse.model_validate(user))
    if user.role == 'patient':
        patient = db.query(Patient).filter(Patient.user_id == user.id).first()
        if patient is not None:
            account.patient = PatientProfileResponse.model_validate(patient)
    elif user.role == 'dentist':
        dentist = db.query(Dentist).filter(Dentist.user_id == user.id).first()
        if dentist is not None:
            account.dentist = DentistProfileResponse.model_validate(dentist)
    return account


def ensure_email_available(db: Session, email: str) -> None:
    if db.query(User).filter(User.email == email).first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='User already exists with this email')


def ensure_phone_available(db: Session, phone: str, exclude_user_id: int | None = None) -> None:
    query = db.query(Patient).filter(Patient.phone == phone)
    if exclude_user_id is not None:
        query = query.filter(Patient.user_id != exclude_user_id)
    if query.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Phone number is already registered')


@router.post('/register', response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    ensure_email_available(db, payload.email)
    ensure_phone_available(db, payload.phone)

    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role='patient',
    )
    db.add(user)
    try:
        db.flush()
        db.add(
            Patient(
                user_id=user.id,
                birthdate=payload.birthdate,
                gender=payload.gender,
                phone=payload.phone,
                address=payload.address,
            )
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='User already exists with this email or phone',
        ) from exc

    db.refresh(user)
    logger.info('Registered patient %s', user.id)
    return issue_tokens(user)


@router.post('/login', response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    user = db.query(User).filter(User.email == payload.email).first()
    if user is None or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid credentials')
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Account is deactivated')

    logger.info('User %s logged in', user.id)
    return issue_tokens(user)


@router.post('/logout')
def logout(current_user: User = Depends(get_current_user)) -> dict:
    logger.info('User %s logged out', current_user.id)
    return {'message': 'Logged out successfully'}


@router.post('/refresh', response_model=TokenResponse)
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)) -> TokenResponse:
    try:
        claims = jwt_handler.decode_refresh_token(payload.refresh_token)
    except PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid refresh token') from exc

    subject = str(claims.get('sub', ''))
    user = db.query(User).filter(User.id == int(subject)).first() if subject.isdigit() else None
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid refresh token')

    return issue_tokens(user)


@router.get('/me', response_model=AccountResponse)
def me(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> AccountResponse:
    return build_account(db, current_user)


@router.put('/profile', response_model=AccountResponse)
def update_profile(
    payload: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AccountResponse:
    user = db.query(User).filter(User.id == current_user.id).first()
    if payload.name is not None:
        user.name = payload.name

    if user.role == 'patient':
        patient = db.query(Patient).filter(Patient.user_id == user.id).first()
        if patient is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Patient profile not found')
        if payload.phone is not None:
            ensure_phone_available(db, payload.phone, exclude_user_id=user.id)
            patient.phone = payload.phone
        if payload.address is not None and payload.address.strip():
            patient.address = payload.address.strip()
        if payload.birthdate is not None:
            patient.birthdate = payload.birthdate
        if payload.gender is not None:
            patient.gender = payload.gender

    db.commit()
    db.refresh(user)
    return build_account(db, user)


@router.put('/change-password')
def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    user = db.query(User).filter(User.id == current_user.id).first()
    if not verify_password(payload.current_password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Current password is incorrect')

    user.hashed_password = get_password_hash(payload.new_password)
    db.commit()
    logger.info('User %s changed password', user.id)
    return {'message': 'Password updated successfully'}
