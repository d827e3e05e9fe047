import os
from datetime import date, timedelta

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('SMTP_HOST', '')

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dental_office.auth.passwords import get_password_hash  # noqa: E402
from dental_office.database import Base  # noqa: E402
from dental_office.models import appointment, availability  # noqa: E402,F401
from dental_office.models.dentist import Dentist  # noqa: E402
from dental_office.models.patient import Patient  # noqa: E402
from dental_office.models.service import DentistService, Service  # noqa: E402
from dental_office.models.user import User  # noqa: E402
from dental_office.notifications.email_service import LoggingNotifier, Notifier  # noqa: E402
from dental_office.scheduling.working_hours import seed_default_working_hours  # noqa: E402

PASSWORD = 'Secret123'


def _engine(url: str = 'sqlite://'):
    if url == 'sqlite://':
        return create_engine(url, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    return create_engine(url, connect_args={'check_same_thread': False})


@pytest.fixture
def session_factory():
    engine = _engine()
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def create_user(db, name: str, email: str, role: str, is_active: bool = True) -> User:
    user = User(
        name=name,
        email=email,
        hashed_password=get_password_hash(PASSWORD),
        role=role,
        is_active=is_active,
    )
    db.add(user)
    db.flush()
    return user


def create_patient(db, name: str, email: str, phone: str) -> User:
    user = create_user(db, name, email, 'patient')
    db.add(Patient(user_id=user.id, birthdate=date(1990, 5, 15), gender='female', phone=phone, address='1 Main St'))
    db.commit()
    db.refresh(user)
    return user


def create_dentist(db, name: str, email: str, license_number: str) -> User:
    user = create_user(db, name, email, 'dentist')
    db.add(Dentist(user_id=user.id, license_number=license_number, specialization=['General Dentistry']))
    seed_default_working_hours(db, user.id)
    db.commit()
    db.refresh(user)
    return user


def create_service(db, name: str, duration: int, price: float = 100, category: str = 'Preventive') -> Service:
    service = Service(
        name=name,
        description=f'{name} service',
        category=category,
        default_duration=duration,
        default_price=price,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def offer_service(db, dentist: User, service: Service, custom_duration: int | None = None) -> DentistService:
    offering = DentistService(
        dentist_id=dentist.id,
        service_id=service.id,
        custom_price=service.default_price,
        custom_duration=custom_duration or service.default_duration,
    )
    db.add(offering)
    db.commit()
    return offering


@pytest.fixture
def factories():
    """Row builders shared by the test modules."""
    return {
        'user': create_user,
        'patient': create_patient,
        'dentist': create_dentist,
        'service': create_service,
        'offer': offer_service,
    }


@pytest.fixture
def dentist(db) -> User:
    return create_dentist(db, 'Sarah Johnson', 'sarah.johnson@dentalcare.com', 'DDS-CA-001')


@pytest.fixture
def patient(db) -> User:
    return create_patient(db, 'John Doe', 'john.doe@example.com', '+15551234567')


@pytest.fixture
def other_patient(db) -> User:
    return create_patient(db, 'Jane Smith', 'jane.smith@example.com', '+15559876543')


@pytest.fixture
def admin(db) -> User:
    user = create_user(db, 'Admin User', 'admin@dentalcare.com', 'admin')
    db.commit()
    return user


@pytest.fixture
def exam(db, dentist) -> Service:
    service = create_service(db, 'Dental Exam', 30, price=80)
    offer_service(db, dentist, service)
    return service


@pytest.fixture
def next_monday() -> date:
    today = date.today()
    days_ahead = (0 - today.weekday()) % 7
    if days_ahead < 2:
        days_ahead += 7
    return today + timedelta(days=days_ahead)


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


class _FailingNotifier(Notifier):
    def __init__(self) -> None:
        self.attempts = []

    def notify(self, kind, recipient_email, template_data) -> None:
        self.attempts.append((kind, recipient_email))
        raise ConnectionError('SMTP server unreachable')


@pytest.fixture
def failing_notifier() -> _FailingNotifier:
    return _FailingNotifier()


@pytest.fixture
def run_background():
    def run(background_tasks) -> list:
        return [task.func(*task.args, **task.kwargs) for task in background_tasks.tasks]

    return run
