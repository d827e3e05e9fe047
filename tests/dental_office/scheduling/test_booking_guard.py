import threading

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker

from dental_office import database
from dental_office.database import Base
from dental_office.models.appointment import Appointment
from dental_office.scheduling import booking
from dental_office.scheduling.booking import (
    DENTIST_DUPLICATE_DETAIL,
    PATIENT_DUPLICATE_DETAIL,
    SLOT_TAKEN_DETAIL,
    ensure_slot_free,
    find_conflicting,
    resolve_duration,
    save_booking,
)


def _appointment(patient, dentist, service, day, time_value='10:00', status='pending') -> Appointment:
    return Appointment(
        patient_id=patient.id,
        dentist_id=dentist.id,
        service_id=service.id,
        date=day,
        time=time_value,
        duration=30,
        status=status,
    )


def test_find_conflicting_only_sees_slot_holding_appointments(db, dentist, patient, exam, next_monday) -> None:
    db.add(_appointment(patient, dentist, exam, next_monday, status='cancelled'))
    db.commit()

    assert find_conflicting(db, dentist.id, next_monday, '10:00') is None

    held = save_booking(db, _appointment(patient, dentist, exam, next_monday))

    assert find_conflicting(db, dentist.id, next_monday, '10:00').id == held.id
    assert find_conflicting(db, dentist.id, next_monday, '10:00', exclude_id=held.id) is None
    assert find_conflicting(db, dentist.id, next_monday, '10:00', patient_id=held.patient_id + 100) is None


def test_same_patient_conflict_is_reported_first(db, dentist, patient, exam, next_monday) -> None:
    save_booking(db, _appointment(patient, dentist, exam, next_monday))

    with pytest.raises(HTTPException) as exception_info:
        ensure_slot_free(db, _appointment(patient, dentist, exam, next_monday))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == PATIENT_DUPLICATE_DETAIL


def test_other_patient_gets_slot_taken(db, dentist, patient, other_patient, exam, next_monday) -> None:
    save_booking(db, _appointment(patient, dentist, exam, next_monday))

    with pytest.raises(HTTPException) as exception_info:
        save_booking(db, _appointment(other_patient, dentist, exam, next_monday))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == SLOT_TAKEN_DETAIL


def test_dentist_side_duplicate_message(db, dentist, patient, exam, next_monday) -> None:
    save_booking(db, _appointment(patient, dentist, exam, next_monday, status='scheduled'))

    with pytest.raises(HTTPException) as exception_info:
        save_booking(
            db,
            _appointment(patient, dentist, exam, next_monday, status='scheduled'),
            duplicate_detail=DENTIST_DUPLICATE_DETAIL,
        )

    assert exception_info.value.detail == DENTIST_DUPLICATE_DETAIL


def test_duplicate_submission_persists_one_appointment(db, dentist, patient, exam, next_monday) -> None:
    save_booking(db, _appointment(patient, dentist, exam, next_monday))
    with pytest.raises(HTTPException):
        save_booking(db, _appointment(patient, dentist, exam, next_monday))
    db.rollback()

    assert db.query(Appointment).count() == 1


def test_unique_index_backs_up_the_guard(db, dentist, patient, other_patient, exam, next_monday, monkeypatch) -> None:
    save_booking(db, _appointment(patient, dentist, exam, next_monday))
    monkeypatch.setattr(booking, 'ensure_slot_free', lambda *args, **kwargs: None)

    with pytest.raises(HTTPException) as exception_info:
        save_booking(db, _appointment(other_patient, dentist, exam, next_monday))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == SLOT_TAKEN_DETAIL
    assert db.query(Appointment).count() == 1


def test_cancelled_appointment_releases_the_slot(db, dentist, patient, other_patient, exam, next_monday) -> None:
    first = save_booking(db, _appointment(patient, dentist, exam, next_monday))
    first.status = 'cancelled'
    db.commit()

    second = save_booking(db, _appointment(other_patient, dentist, exam, next_monday))

    assert second.status == 'pending'
    assert db.query(Appointment).count() == 2


def test_resolve_duration_prefers_active_custom_duration(db, dentist, factories) -> None:
    cleaning = factories['service'](db, 'Dental Cleaning', 60)
    whitening = factories['service'](db, 'Teeth Whitening', 60, category='Cosmetic')
    factories['offer'](db, dentist, cleaning, custom_duration=45)
    paused = factories['offer'](db, dentist, whitening, custom_duration=90)
    paused.is_offered = False
    db.commit()

    assert resolve_duration(db, dentist.id, cleaning) == 45
    assert resolve_duration(db, dentist.id, whitening) == 60


def test_concurrent_bookings_for_one_slot_admit_exactly_one(tmp_path, factories, next_monday) -> None:
    engine = create_engine(f'sqlite:///{tmp_path / "race.db"}', connect_args={'check_same_thread': False})
    Base.metadata.create_all(bind=engine)
    make_session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = make_session()
    dentist = factories['dentist'](setup, 'Michael Chen', 'michael.chen@dentalcare.com', 'DDS-CA-002')
    patients = [
        factories['patient'](setup, 'John Doe', 'john.doe@example.com', '+15551234567'),
        factories['patient'](setup, 'Jane Smith', 'jane.smith@example.com', '+15559876543'),
    ]
    service = factories['service'](setup, 'Dental Exam', 30)
    ids = (dentist.id, [patient.id for patient in patients], service.id)
    setup.close()

    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(patient_id: int) -> None:
        session = make_session()
        try:
            appointment = Appointment(
                patient_id=patient_id,
                dentist_id=ids[0],
                service_id=ids[2],
                date=next_monday,
                time='10:00',
                duration=30,
                status='pending',
            )
            barrier.wait()
            save_booking(session, appointment)
            outcomes.append('booked')
        except HTTPException as exc:
            outcomes.append(exc.status_code)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt, args=(patient_id,)) for patient_id in ids[1]]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    check = make_session()
    try:
        holding = check.query(Appointment).filter(Appointment.status.in_(database.SLOT_HOLDING_STATUSES)).count()
    finally:
        check.close()
        engine.dispose()

    assert sorted(outcomes, key=str) == [409, 'booked']
    assert holding == 1


def test_ensure_appointment_schema_upgrades_legacy_table(tmp_path, monkeypatch) -> None:
    engine = create_engine(f'sqlite:///{tmp_path / "legacy.db"}')
    with engine.begin() as connection:
        connection.execute(
            text(
                'CREATE TABLE appointments ('
                'id INTEGER PRIMARY KEY, patient_id INTEGER, dentist_id INTEGER, service_id INTEGER, '
                '"date" DATE, "time" VARCHAR(5), status VARCHAR(20))'
            )
        )
    monkeypatch.setattr(database, '_appointment_schema_checked', False)

    database.ensure_appointment_schema(bind=engine)

    inspector = inspect(engine)
    columns = {column['name'] for column in inspector.get_columns('appointments')}
    indexes = {index['name']: index for index in inspector.get_indexes('appointments')}
    assert {'duration', 'notes', 'created_by', 'cancelled_by', 'cancelled_at', 'cancellation_reason'} <= columns
    assert indexes['uq_appointments_active_slot']['unique']
    assert 'idx_appointments_dentist_date' in indexes

    with engine.begin() as connection:
        insert = text(
            'INSERT INTO appointments (patient_id, dentist_id, service_id, "date", "time", status) '
            'VALUES (:patient, 1, 1, \'2026-03-02\', \'10:00\', :status)'
        )
        connection.execute(insert, {'patient': 1, 'status': 'cancelled'})
        connection.execute(insert, {'patient': 2, 'status': 'pending'})
    with pytest.raises(Exception):
        with engine.begin() as connection:
            connection.execute(insert, {'patient': 3, 'status': 'confirmed'})
    engine.dispose()
