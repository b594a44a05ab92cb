from datetime import date, datetime
from decimal import Decimal

import pytest
from django.conf import settings

from apps.core.exceptions import (
    AlreadyAttended, InvalidSignature, MealNotBooked, NoActiveMealWindow, NoActiveSubscription, NotFound,
)
from apps.core.models import BookingAttendance, MealConfirmation, ScanEvent
from apps.core.services import attendance, bookings, confirmations, schedule
from apps.utils import qr_utils

pytestmark = pytest.mark.django_db

TODAY = date(2025, 6, 14)
LUNCH_TIME = datetime(2025, 6, 14, 12, 30)


def _scan(qr, staff, clock):
    return attendance.scan(qr['data'], qr['hash'], staff, device_info='gate-1', clock=clock)


def test_confirmed_member_is_marked_attended(slots, student, staff, subscribe, clock):
    subscribe(student)
    confirmation = confirmations.create_confirmation(student, TODAY, 'lunch', clock=clock)
    clock.set(LUNCH_TIME)

    result = _scan(attendance.profile_qr(student, clock=clock), staff, clock)

    assert result.status == 'attendance_marked'
    assert result.was_confirmed is True
    assert result.meal_type == 'lunch'
    confirmation.refresh_from_db()
    assert confirmation.attended is True
    assert confirmation.attendance_method == 'qr_code'
    assert confirmation.recorded_by == staff

    event = ScanEvent.objects.get()
    assert event.result == 'ALLOWED'
    assert event.kind == 'profile'
    assert event.subject_id == student.pk
    assert event.device_info == 'gate-1'


def test_rescan_is_rejected_as_duplicate(slots, student, staff, subscribe, clock):
    subscribe(student)
    confirmations.create_confirmation(student, TODAY, 'lunch', clock=clock)
    clock.set(LUNCH_TIME)
    qr = attendance.profile_qr(student, clock=clock)
    _scan(qr, staff, clock)

    with pytest.raises(AlreadyAttended):
        _scan(qr, staff, clock)

    assert ScanEvent.objects.filter(result='BLOCKED_DUPLICATE').count() == 1


def test_unconfirmed_covered_member_walks_in(slots, student, staff, subscribe, clock):
    subscribe(student)
    clock.set(LUNCH_TIME)

    result = _scan(attendance.profile_qr(student, clock=clock), staff, clock)

    assert result.status == 'walk_in_attendance'
    assert result.was_confirmed is False
    walk_in = MealConfirmation.objects.get(user=student, meal_date=TODAY, meal_type='lunch')
    assert walk_in.is_walk_in is True
    assert walk_in.attended is True
    assert walk_in.meal_cost == Decimal('0')
    assert walk_in.notes == settings.MESS_CONFIG['walk_in_note']
    assert ScanEvent.objects.get().result == 'WALK_IN'


def test_uncovered_member_is_blocked_without_a_record(slots, student, staff, clock):
    clock.set(LUNCH_TIME)

    with pytest.raises(NoActiveSubscription):
        _scan(attendance.profile_qr(student, clock=clock), staff, clock)

    assert not MealConfirmation.objects.exists()
    assert ScanEvent.objects.get().result == 'BLOCKED_NO_SUBSCRIPTION'


def test_scan_outside_service_hours(slots, student, staff, subscribe, clock):
    subscribe(student)
    clock.set(datetime(2025, 6, 14, 10, 30))

    with pytest.raises(NoActiveMealWindow):
        _scan(attendance.profile_qr(student, clock=clock), staff, clock)

    assert ScanEvent.objects.get().result == 'BLOCKED_NO_MEAL_WINDOW'


def test_tampered_code_is_blocked(slots, student, staff, clock):
    clock.set(LUNCH_TIME)
    qr = attendance.profile_qr(student, clock=clock)

    with pytest.raises(InvalidSignature):
        attendance.scan(qr['data'], 'f' * 64, staff, clock=clock)

    assert ScanEvent.objects.get().result == 'BLOCKED_QR_INVALID'


def test_deleted_user_is_not_found(slots, staff, clock):
    clock.set(LUNCH_TIME)
    qr = qr_utils.generate_qr_payload(424242, qr_utils.PROFILE_KIND, clock=clock)

    with pytest.raises(NotFound):
        _scan(qr, staff, clock)


def test_overlapping_meals_mark_the_next_unattended_one(slots, student, staff, subscribe, clock):
    schedule.update_slot('snacks', start_time='13:30:00')
    subscribe(student)
    clock.set(datetime(2025, 6, 14, 13, 45))
    qr = attendance.profile_qr(student, clock=clock)

    first = _scan(qr, staff, clock)
    second = _scan(qr, staff, clock)

    assert first.meal_type == 'lunch'
    assert second.meal_type == 'snacks'
    with pytest.raises(AlreadyAttended):
        _scan(qr, staff, clock)


def test_booking_qr_marks_each_meal_once(slots, student, staff, clock):
    booking = bookings.create_guest_booking(student, TODAY, ['lunch', 'dinner'], number_of_guests=2, clock=clock)
    clock.set(LUNCH_TIME)
    qr = attendance.booking_qr(booking, clock=clock)

    result = _scan(qr, staff, clock)

    assert result.status == 'attendance_marked'
    assert result.kind == 'booking'
    assert BookingAttendance.objects.get(booking=booking, meal_type='lunch').attended is True
    assert BookingAttendance.objects.get(booking=booking, meal_type='dinner').attended is False

    with pytest.raises(AlreadyAttended):
        _scan(qr, staff, clock)

    clock.set(datetime(2025, 6, 14, 19, 30))
    assert _scan(qr, staff, clock).meal_type == 'dinner'


def test_booking_without_current_meal(slots, student, staff, clock):
    booking = bookings.create_guest_booking(student, TODAY, ['dinner'], clock=clock)
    clock.set(LUNCH_TIME)

    with pytest.raises(MealNotBooked):
        _scan(attendance.booking_qr(booking, clock=clock), staff, clock)

    assert ScanEvent.objects.get().result == 'BLOCKED_NOT_BOOKED'
