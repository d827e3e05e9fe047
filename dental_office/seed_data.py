"""Seed the database with an admin, dentists, sample patients and the service catalog.

Usage:
    python -m dental_office.seed_data

Existing rows are left alone; running the command twice is safe.
"""
import logging
from datetime import date

from sqlalchemy.orm import Session

from dental_office.auth.passwords import get_password_hash
from dental_office.database import Base, SessionLocal, engine, ensure_appointment_schema
from dental_office.models import appointment, availability  # noqa: F401
from dental_office.models.dentist import Dentist
from dental_office.models.patient import Patient
from dental_office.models.service import DentistService, Service
from dental_office.models.user import User
from dental_office.scheduling.working_hours import seed_default_working_hours

logger = logging.getLogger(__name__)

ADMIN = {'name': 'Admin User', 'email': 'admin@dentalcare.com', 'password': 'Admin123!'}

DENTISTS = [
    {
        'name': 'Sarah Johnson',
        'email': 'sarah.johnson@dentalcare.com',
        'license_number': 'DDS-CA-001',
        'specialization': ['General Dentistry', 'Cosmetic Dentistry'],
        'experience': 12,
        'education': ['Doctor of Dental Surgery (DDS), UCLA School of Dentistry, 2012'],
        'bio': 'Dedicated dentist with over 12 years of experience in general and cosmetic dentistry.',
        'consultation_fee': 150,
        'rating': 4.8,
        'total_reviews': 234,
    },
    {
        'name': 'Michael Chen',
        'email': 'michael.chen@dentalcare.com',
        'license_number': 'DDS-CA-002',
        'specialization': ['Orthodontics', 'Pediatric Dentistry'],
        'experience': 8,
        'education': ['Doctor of Dental Surgery (DDS), USC School of Dentistry, 2016'],
        'bio': 'Specializes in orthodontics and pediatric dentistry for children and adults.',
        'consultation_fee': 175,
        'rating': 4.9,
        'total_reviews': 189,
    },
    {
        'name': 'Emily Rodriguez',
        'email': 'emily.rodriguez@dentalcare.com',
        'license_number': 'DDS-CA-003',
        'specialization': ['Oral Surgery', 'Implantology'],
        'experience': 15,
        'education': ['Doctor of Dental Surgery (DDS), UCSF School of Dentistry, 2009'],
        'bio': 'Oral surgeon with expertise in complex extractions and dental implants.',
        'consultation_fee': 200,
        'rating': 4.7,
        'total_reviews': 156,
    },
    {
        'name': 'Robert Thompson',
        'email': 'robert.thompson@dentalcare.com',
        'license_number': 'DDS-CA-004',
        'specialization': ['Endodontics', 'General Dentistry'],
        'experience': 10,
        'education': ['Doctor of Dental Surgery (DDS), Loma Linda University School of Dentistry, 2014'],
        'bio': 'Endodontic specialist focused on root canal therapy and saving natural teeth.',
        'consultation_fee': 180,
        'rating': 4.6,
        'total_reviews': 203,
    },
    {
        'name': 'Lisa Williams',
        'email': 'lisa.williams@dentalcare.com',
        'license_number': 'DDS-CA-005',
        'specialization': ['Periodontics', 'General Dentistry'],
        'experience': 14,
        'education': ['Doctor of Dental Surgery (DDS), UCLA School of Dentistry, 2010'],
        'bio': 'Periodontal specialist dedicated to treating gum disease.',
        'consultation_fee': 160,
        'rating': 4.8,
        'total_reviews': 178,
    },
]
DENTIST_PASSWORD = 'Dentist123!'

PATIENTS = [
    {
        'name': 'John Doe',
        'email': 'john.doe@example.com',
        'phone': '+15551234567',
        'birthdate': date(1990, 5, 15),
        'gender': 'male',
        'address': '123 Main St, Los Angeles, CA',
    },
    {
        'name': 'Jane Smith',
        'email': 'jane.smith@example.com',
        'phone': '+15559876543',
        'birthdate': date(1985, 8, 22),
        'gender': 'female',
        'address': '456 Oak Ave, San Diego, CA',
    },
]
PATIENT_PASSWORD = 'Patient123!'

SERVICES = [
    ('Dental Exam', 'Comprehensive oral examination', 'Preventive', 30, 80),
    ('Dental Cleaning', 'Professional teeth cleaning and polishing', 'Preventive', 60, 120),
    ('Tooth Filling', 'Composite filling for cavities', 'Restorative', 60, 200),
    ('Root Canal', 'Root canal therapy', 'Restorative', 90, 900),
    ('Teeth Whitening', 'In-office whitening treatment', 'Cosmetic', 60, 350),
    ('Orthodontic Consultation', 'Braces and aligner assessment', 'Orthodontic', 45, 100),
    ('Tooth Extraction', 'Simple or surgical extraction', 'Surgical', 60, 250),
    ('Emergency Visit', 'Urgent care for dental pain or trauma', 'Emergency', 30, 150),
    ('Initial Consultation', 'First visit and treatment planning', 'Consultation', 30, 75),
]


def _get_or_create_user(db: Session, name: str, email: str, password: str, role: str) -> tuple[User, bool]:
    user = db.query(User).filter(User.email == email).first()
    if user is not None:
        return user, False
    user = User(name=name, email=email, hashed_password=get_password_hash(password), role=role)
    db.add(user)
    db.flush()
    return user, True


def seed(db: Session) -> dict[str, int]:
    created = {'users': 0, 'services': 0, 'assignments': 0}

    _, is_new = _get_or_create_user(db, ADMIN['name'], ADMIN['email'], ADMIN['password'], 'admin')
    created['users'] += int(is_new)

    services = []
    for name, description, category, duration, price in SERVICES:
        service = db.query(Service).filter(Service.name == name).first()
        if service is None:
            service = Service(
                name=name,
                description=description,
                category=category,
                default_duration=duration,
                default_price=price,
            )
            db.add(service)
            db.flush()
            created['services'] += 1
        services.append(service)

    for data in DENTISTS:
        profile = dict(data)
        user, is_new = _get_or_create_user(
            db, profile.pop('name'), profile.pop('email'), DENTIST_PASSWORD, 'dentist'
        )
        if not is_new:
            continue
        created['users'] += 1
        db.add(Dentist(user_id=user.id, **profile))
        seed_default_working_hours(db, user.id)
        for service in services:
            db.add(
                DentistService(
                    dentist_id=user.id,
                    service_id=service.id,
                    custom_price=service.default_price,
                    custom_duration=service.default_duration,
                )
            )
            created['assignments'] += 1

    for data in PATIENTS:
        profile = dict(data)
        user, is_new = _get_or_create_user(
            db, profile.pop('name'), profile.pop('email'), PATIENT_PASSWORD, 'patient'
        )
        if is_new:
            created['users'] += 1
            db.add(Patient(user_id=user.id, **profile))

    db.commit()
    return created


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    ensure_appointment_schema()

    db = SessionLocal()
    try:
        created = seed(db)
    finally:
        db.close()

    logger.info(
        'Seeding finished: %s users, %s services, %s dentist services created',
        created['users'],
        created['services'],
        created['assignments'],
    )
    print(f"Admin login: {ADMIN['email']} / {ADMIN['password']}")


if __name__ == '__main__':
    main()
