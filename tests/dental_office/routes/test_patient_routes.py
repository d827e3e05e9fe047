from datetime import datetime, timedelta

import pytest
from fastapi import BackgroundTasks, HTTPException
from pydantic import ValidationError

from dental_office.models.appointment import Appointment
from dental_office.models.availability import AvailabilityOverride
from dental_office.notifications.email_service import NotificationKind
from dental_office.routes.patient_routes import (
    BookAppointmentRequest,
    CancelAppointmentRequest,
    RescheduleAppointmentRequest,
    book_appointment,
    cancel_appointment,
    list_my_appointments,
    reschedule_appointment,
)
from dental_office.routes.public_routes import available_slots
from dental_office.scheduling.booking import PATIENT_DUPLICATE_DETAIL, SLOT_TAKEN_DETAIL
from dental_office.scheduling.slots import combine


def _book(db, patient, dentist, service, day, time_value='10:00', notifier=None, now=None, tasks=None):
    payload = BookAppointmentRequest(dentist_id=dentist.id, service_id=service.id, date=day, time=time_value)
    return book_appointment(
        payload,
        tasks or BackgroundTasks(),
        current_user=patient,
        db=db,
        notifier=notifier,
        now=now or datetime.now(),
    )


def _list(db, patient, **filters):
    options = {'status_filter': None, 'upcoming': False, 'page': 1, 'limit': 10}
    options.update(filters)
    return list_my_appointments(**options, current_user=patient, db=db, now=datetime.now())


def test_booking_takes_the_slot_out_of_availability(db, dentist, patient, exam, notifier, next_monday) -> None:
    before = available_slots(db, dentist.id, next_monday)
    assert before.total_slots == 16
    assert before.available_slots == 16

    appointment = _book(db, patient, dentist, exam, next_monday, notifier=notifier)

    assert appointment.status == 'pending'
    assert appointment.duration == 30
    assert appointment.dentist_name == 'Sarah Johnson'
    after = available_slots(db, dentist.id, next_monday)
    assert after.available_slots == 15
    assert [slot.is_available for slot in after.slots if slot.time == '10:00'] == [False]


def test_booking_queues_request_email_to_dentist(db, dentist, patient, exam, notifier, next_monday, run_background) -> None:
    tasks = BackgroundTasks()

    _book(db, patient, dentist, exam, next_monday, notifier=notifier, tasks=tasks)

    assert run_background(tasks) == [True]
    kind, recipient, data = notifier.sent[0]
    assert kind is NotificationKind.NEW_APPOINTMENT_TO_DENTIST
    assert recipient == dentist.email
    assert data['patient_name'] == 'John Doe'


def test_duplicate_booking_by_same_patient_is_rejected(db, dentist, patient, exam, notifier, next_monday) -> None:
    _book(db, patient, dentist, exam, next_monday, notifier=notifier)

    with pytest.raises(HTTPException) as exception_info:
        _book(db, patient, dentist, exam, next_monday, notifier=notifier)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == PATIENT_DUPLICATE_DETAIL
    assert db.query(Appointment).count() == 1


def test_booking_a_taken_slot_is_a_conflict(db, dentist, patient, other_patient, exam, notifier, next_monday) -> None:
    _book(db, patient, dentist, exam, next_monday, notifier=notifier)

    with pytest.raises(HTTPException) as exception_info:
        _book(db, other_patient, dentist, exam, next_monday, notifier=notifier)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == SLOT_TAKEN_DETAIL


@pytest.mark.parametrize(
    ('offset_days', 'time_value', 'error_detail'),
    [
        (5, '10:00', 'Dentist does not work on Saturdays'),
        (0, '10:15', 'Selected time is outside the dentist\'s available hours'),
        (0, '17:00', 'Selected time is outside the dentist\'s available hours'),
    ],
)
def test_booking_outside_working_hours_is_rejected(
    db, dentist, patient, exam, notifier, next_monday, offset_days, time_value, error_detail
) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(db, patient, dentist, exam, next_monday + timedelta(days=offset_days), time_value, notifier=notifier)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == error_detail


def test_long_service_must_end_before_closing(db, dentist, patient, notifier, next_monday, factories) -> None:
    cleaning = factories['service'](db, 'Dental Cleaning', 60)
    factories['offer'](db, dentist, cleaning)

    with pytest.raises(HTTPException) as exception_info:
        _book(db, patient, dentist, cleaning, next_monday, '16:30', notifier=notifier)

    assert exception_info.value.status_code == 400
    assert _book(db, patient, dentist, cleaning, next_monday, '16:00', notifier=notifier).duration == 60


def test_booking_in_the_past_is_rejected(db, dentist, patient, exam, notifier, next_monday) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(db, patient, dentist, exam, next_monday, '10:00', notifier=notifier, now=combine(next_monday, '12:00'))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointments must be booked for a future date and time'


def test_booking_a_service_the_dentist_does_not_offer(db, dentist, patient, notifier, next_monday, factories) -> None:
    root_canal = factories['service'](db, 'Root Canal', 90, category='Restorative')

    with pytest.raises(HTTPException) as exception_info:
        _book(db, patient, dentist, root_canal, next_monday, notifier=notifier)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Dentist does not offer this service'


def test_book_request_rejects_malformed_time(next_monday) -> None:
    with pytest.raises(ValidationError):
        BookAppointmentRequest(dentist_id=1, service_id=1, date=next_monday, time='25:00')


@pytest.mark.parametrize(('hours_before', 'allowed'), [(25, True), (23, False)])
def test_cancel_respects_the_change_window(
    db, dentist, patient, exam, notifier, next_monday, run_background, hours_before, allowed
) -> None:
    appointment = _book(db, patient, dentist, exam, next_monday, notifier=notifier)
    now = combine(next_monday, '10:00') - timedelta(hours=hours_before)
    tasks = BackgroundTasks()

    if not allowed:
        with pytest.raises(HTTPException) as exception_info:
            cancel_appointment(
                appointment.id, tasks, None, current_user=patient, db=db, notifier=notifier, now=now
            )
        assert exception_info.value.detail == 'Appointments can only be cancelled more than 24 hours in advance.'
        return

    cancelled = cancel_appointment(
        appointment.id,
        tasks,
        CancelAppointmentRequest(reason='  Feeling better  '),
        current_user=patient,
        db=db,
        notifier=notifier,
        now=now,
    )

    assert cancelled.status == 'cancelled'
    assert cancelled.cancelled_by == 'patient'
    assert cancelled.cancellation_reason == 'Feeling better'
    run_background(tasks)
    assert notifier.sent[-1][0] is NotificationKind.CANCELLATION_CONFIRMATION
    assert notifier.sent[-1][1] == patient.email
    assert available_slots(db, dentist.id, next_monday).available_slots == 16


def test_cancelling_twice_is_rejected(db, dentist, patient, exam, notifier, next_monday) -> None:
    appointment = _book(db, patient, dentist, exam, next_monday, notifier=notifier)
    now = combine(next_monday, '10:00') - timedelta(days=2)
    cancel_appointment(appointment.id, BackgroundTasks(), None, current_user=patient, db=db, notifier=notifier, now=now)

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(
            appointment.id, BackgroundTasks(), None, current_user=patient, db=db, notifier=notifier, now=now
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot cancel an appointment that is cancelled.'


def test_patient_cannot_touch_another_patients_appointment(
    db, dentist, patient, other_patient, exam, notifier, next_monday
) -> None:
    appointment = _book(db, patient, dentist, exam, next_monday, notifier=notifier)

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(
            appointment.id, BackgroundTasks(), None, current_user=other_patient, db=db, notifier=notifier,
            now=datetime.now(),
        )

    assert exception_info.value.status_code == 404


def test_reschedule_survives_failing_mail_server(
    db, dentist, patient, exam, notifier, failing_notifier, next_monday, run_background
) -> None:
    appointment = _book(db, patient, dentist, exam, next_monday, notifier=notifier)
    wednesday = next_monday + timedelta(days=2)
    tasks = BackgroundTasks()

    moved = reschedule_appointment(
        appointment_id=appointment.id,
        payload=RescheduleAppointmentRequest(date=wednesday, time='14:00'),
        background_tasks=tasks,
        current_user=patient,
        db=db,
        notifier=failing_notifier,
        now=combine(next_monday, '09:00') - timedelta(days=2),
    )

    assert (moved.date, moved.time, moved.status) == (wednesday, '14:00', 'pending')
    assert run_background(tasks) == [False, False]
    assert [kind for kind, _ in failing_notifier.attempts] == [
        NotificationKind.RESCHEDULE_NOTIFICATION_TO_DENTIST,
        NotificationKind.RESCHEDULE_CONFIRMATION_TO_PATIENT,
    ]
    assert available_slots(db, dentist.id, next_monday).available_slots == 16
    assert available_slots(db, dentist.id, wednesday).available_slots == 15


def test_reschedule_into_a_taken_slot_is_a_conflict(
    db, dentist, patient, other_patient, exam, notifier, next_monday
) -> None:
    mine = _book(db, patient, dentist, exam, next_monday, '10:00', notifier=notifier)
    _book(db, other_patient, dentist, exam, next_monday, '11:00', notifier=notifier)

    with pytest.raises(HTTPException) as exception_info:
        reschedule_appointment(
            appointment_id=mine.id,
            payload=RescheduleAppointmentRequest(date=next_monday, time='11:00'),
            background_tasks=BackgroundTasks(),
            current_user=patient,
            db=db,
            notifier=notifier,
            now=combine(next_monday, '09:00') - timedelta(days=2),
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == SLOT_TAKEN_DETAIL
    db.rollback()
    assert db.get(Appointment, mine.id).time == '10:00'


def test_listing_is_paginated_newest_first(db, dentist, patient, exam, notifier, next_monday) -> None:
    for time_value in ('09:00', '10:00', '11:00'):
        _book(db, patient, dentist, exam, next_monday, time_value, notifier=notifier)

    first_page = _list(db, patient, limit=2)
    second_page = _list(db, patient, page=2, limit=2)

    assert [item.time for item in first_page.appointments] == ['11:00', '10:00']
    assert [item.time for item in second_page.appointments] == ['09:00']
    assert first_page.pagination.model_dump() == {'page': 1, 'limit': 2, 'total': 3, 'pages': 2}


def test_listing_rejects_unknown_status(db, patient) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _list(db, patient, status_filter='archived')

    assert exception_info.value.status_code == 400


def test_booking_cannot_run_into_a_blocked_range(db, dentist, patient, notifier, next_monday, factories) -> None:
    cleaning = factories['service'](db, 'Dental Cleaning', 60)
    factories['offer'](db, dentist, cleaning)
    db.add_all(
        [
            AvailabilityOverride(dentist_id=dentist.id, date=next_monday, start='09:00', end='12:00', is_available=True),
            AvailabilityOverride(dentist_id=dentist.id, date=next_monday, start='10:30', end='11:00', is_available=False),
        ]
    )
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        _book(db, patient, dentist, cleaning, next_monday, '10:00', notifier=notifier)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Selected time is outside the dentist\'s available hours'
    assert db.query(Appointment).count() == 0
    assert _book(db, patient, dentist, cleaning, next_monday, '11:00', notifier=notifier).time == '11:00'


@pytest.mark.parametrize(('hours_before', 'allowed'), [(25, True), (23, False)])
def test_reschedule_respects_the_change_window(
    db, dentist, patient, exam, notifier, next_monday, hours_before, allowed
) -> None:
    appointment = _book(db, patient, dentist, exam, next_monday, notifier=notifier)
    wednesday = next_monday + timedelta(days=2)
    options = {
        'appointment_id': appointment.id,
        'payload': RescheduleAppointmentRequest(date=wednesday, time='14:00'),
        'background_tasks': BackgroundTasks(),
        'current_user': patient,
        'db': db,
        'notifier': notifier,
        'now': combine(next_monday, '10:00') - timedelta(hours=hours_before),
    }

    if not allowed:
        with pytest.raises(HTTPException) as exception_info:
            reschedule_appointment(**options)
        assert exception_info.value.status_code == 400
        assert exception_info.value.detail == 'Appointments can only be rescheduled more than 24 hours in advance.'
        return

    moved = reschedule_appointment(**options)
    assert (moved.date, moved.time) == (wednesday, '14:00')


def test_single_digit_hours_are_stored_zero_padded(db, dentist, patient, exam, notifier, next_monday) -> None:
    appointment = _book(db, patient, dentist, exam, next_monday, '9:30', notifier=notifier)

    assert appointment.time == '09:30'
    with pytest.raises(HTTPException) as exception_info:
        _book(db, patient, dentist, exam, next_monday, '09:30', notifier=notifier)
    assert exception_info.value.status_code == 409
