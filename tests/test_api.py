from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from django.utils import timezone

from apps.core.models import Fine, MealConfirmation, ScanEvent, StaffToken
from apps.core.services import attendance, fines

pytestmark = pytest.mark.django_db

IST = ZoneInfo('Asia/Kolkata')


@pytest.fixture
def set_now(monkeypatch):
    def _set(at):
        monkeypatch.setattr(timezone, 'now', lambda: at)
    _set(datetime(2025, 6, 14, 9, 0, tzinfo=IST))
    return _set


@pytest.fixture
def login(api_client):
    def _login(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _login


def test_schedule_shows_current_meal(slots, student, login, set_now):
    set_now(datetime(2025, 6, 14, 12, 30, tzinfo=IST))

    response = login(student).get('/api/v1/schedule')

    assert response.status_code == 200
    assert [slot['meal_type'] for slot in response.data['slots']] == ['breakfast', 'lunch', 'snacks', 'dinner']
    assert response.data['current']['active']['meal_type'] == 'lunch'
    assert response.data['current']['upcoming']['meal_type'] == 'snacks'


def test_deadline_endpoint(slots, student, login, set_now):
    response = login(student).get('/api/v1/schedule/deadline/lunch', {'date': '2025-06-14'})

    assert response.status_code == 200
    assert response.data['can_confirm'] is True
    assert response.data['hours_before_meal'] == 2


def test_requests_need_authentication(slots, api_client):
    assert api_client.get('/api/v1/schedule').status_code == 401


def test_confirm_then_duplicate(slots, student, login, set_now):
    client = login(student)

    created = client.post('/api/v1/confirmations', {'meal_date': '2025-06-15', 'meal_type': 'lunch'}, format='json')
    duplicate = client.post('/api/v1/confirmations', {'meal_date': '2025-06-15', 'meal_type': 'lunch'}, format='json')

    assert created.status_code == 201
    assert created.data['meal_cost'] == '50.00'
    assert created.data['attended'] is None
    assert duplicate.status_code == 409
    assert duplicate.data['detail'].code == 'already_exists'


def test_confirm_after_deadline_explains_why(slots, student, login, set_now):
    set_now(datetime(2025, 6, 14, 10, 1, tzinfo=IST))

    response = login(student).post(
        '/api/v1/confirmations', {'meal_date': '2025-06-14', 'meal_type': 'lunch'}, format='json'
    )

    assert response.status_code == 400
    assert response.data['detail'] == 'Confirmation deadline was 2025-06-14T10:00:00'
    assert response.data['detail'].code == 'deadline_passed'


def test_invalid_meal_type_is_a_validation_error(slots, student, login, set_now):
    response = login(student).post(
        '/api/v1/confirmations', {'meal_date': '2025-06-15', 'meal_type': 'brunch'}, format='json'
    )

    assert response.status_code == 400
    assert 'meal_type' in response.data


def test_list_confirmations_in_range(slots, student, login, set_now):
    client = login(student)
    client.post('/api/v1/confirmations', {'meal_date': '2025-06-15', 'meal_type': 'lunch'}, format='json')
    client.post('/api/v1/confirmations', {'meal_date': '2025-06-20', 'meal_type': 'lunch'}, format='json')

    response = client.get('/api/v1/confirmations', {'start_date': '2025-06-14', 'end_date': '2025-06-16'})

    assert response.status_code == 200
    assert [row['meal_date'] for row in response.data] == ['2025-06-15']


def test_cancel_is_owner_only(slots, student, other_student, api_client, set_now):
    api_client.force_authenticate(user=student)
    confirmation_id = api_client.post(
        '/api/v1/confirmations', {'meal_date': '2025-06-15', 'meal_type': 'lunch'}, format='json'
    ).data['id']

    api_client.force_authenticate(user=other_student)
    assert api_client.delete(f'/api/v1/confirmations/{confirmation_id}').status_code == 403

    api_client.force_authenticate(user=student)
    response = api_client.delete(f'/api/v1/confirmations/{confirmation_id}')
    assert response.status_code == 200
    assert response.data['status'] == 'cancelled'
    assert response.data['fine'] is None


def test_staff_marks_no_show_with_penalty(slots, student, staff, api_client, set_now):
    confirmation = MealConfirmation.objects.create(user=student, meal_date='2025-06-14', meal_type='breakfast')
    api_client.force_authenticate(user=staff)

    response = api_client.post(
        f'/api/v1/confirmations/{confirmation.pk}/attendance',
        {'attended': False, 'fine_amount': '25.00'},
        format='json',
    )

    assert response.status_code == 200
    assert response.data['attendance_status'] == 'NO_SHOW'
    assert Fine.objects.get(user=student).fine_type == 'no_show'


def test_students_cannot_mark_attendance(slots, student, login, set_now):
    confirmation = MealConfirmation.objects.create(user=student, meal_date='2025-06-14', meal_type='breakfast')

    response = login(student).post(
        f'/api/v1/confirmations/{confirmation.pk}/attendance', {'attended': True}, format='json'
    )

    assert response.status_code == 403


def test_bulk_confirm_reports_unknown_users(slots, student, staff, login, set_now):
    response = login(staff).post(
        '/api/v1/confirmations/bulk',
        {'user_ids': [student.pk, 999999], 'meal_date': '2025-06-15', 'meal_type': 'dinner'},
        format='json',
    )

    assert response.status_code == 200
    assert response.data['successful'] == 1
    assert response.data['failed'] == 1
    assert response.data['errors'] == [{'user_id': 999999, 'error': 'User not found'}]


def test_daily_report_for_staff(slots, student, staff, login, set_now):
    MealConfirmation.objects.create(user=student, meal_date='2025-06-14', meal_type='lunch')

    response = login(staff).get('/api/v1/reports/daily', {'date': '2025-06-14'})

    assert response.status_code == 200
    assert response.data['meals']['lunch']['pending'] == 1


def test_manual_freeze_endpoint(slots, student, staff, login, set_now):
    MealConfirmation.objects.create(user=student, meal_date='2025-06-15', meal_type='lunch')

    response = login(staff).post(
        '/api/v1/freeze', {'meal_type': 'lunch', 'meal_date': '2025-06-15', 'reason': 'holiday'}, format='json'
    )

    assert response.status_code == 200
    assert response.data['frozen'] == 1


def test_profile_qr_includes_image(slots, student, login, set_now):
    response = login(student).get('/api/v1/qr/profile')

    assert response.status_code == 200
    assert set(response.data['qr']) == {'data', 'hash', 'expires'}
    assert response.data['image']


def test_only_mess_staff_can_scan(slots, student, login, set_now):
    response = login(student).post('/api/v1/qr/scan', {'qr_data': 'x', 'qr_hash': 'y'}, format='json')

    assert response.status_code == 403


def test_scanner_device_token_scans_walk_in(slots, student, staff, api_client, subscribe, set_now):
    set_now(datetime(2025, 6, 14, 12, 30, tzinfo=IST))
    subscribe(student)
    staff_token, token = StaffToken.create_token('Gate 1', staff)
    qr = attendance.profile_qr(student)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    response = api_client.post(
        '/api/v1/qr/scan', {'qr_data': qr['data'], 'qr_hash': qr['hash'], 'device_info': 'gate-1'}, format='json'
    )

    assert response.status_code == 200
    assert response.data['status'] == 'walk_in_attendance'
    assert response.data['meal_type'] == 'lunch'
    assert response.data['was_confirmed'] is False
    assert ScanEvent.objects.get().staff_token == staff_token


def test_invalid_qr_is_generic(slots, staff, login, set_now):
    response = login(staff).post('/api/v1/qr/scan', {'qr_data': 'bm9wZQ==', 'qr_hash': 'abc'}, format='json')

    assert response.status_code == 400
    assert response.data['detail'] == 'Invalid or expired QR code.'
    assert response.data['detail'].code == 'invalid_qr'


def test_bad_or_expired_device_token(slots, staff, api_client, set_now):
    api_client.credentials(HTTP_AUTHORIZATION='Bearer nope')
    assert api_client.get('/api/v1/schedule').status_code == 401

    staff_token, token = StaffToken.create_token('Gate 2', staff)
    StaffToken.objects.filter(pk=staff_token.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    assert api_client.get('/api/v1/schedule').status_code == 401


def test_slot_edits_are_admin_only(slots, student, admin_user, api_client, set_now):
    api_client.force_authenticate(user=student)
    assert api_client.patch('/api/v1/schedule/slots/lunch', {'per_meal_cost': '55.00'}, format='json').status_code == 403

    api_client.force_authenticate(user=admin_user)
    response = api_client.patch('/api/v1/schedule/slots/lunch', {'per_meal_cost': '55.00'}, format='json')

    assert response.status_code == 200
    assert response.data['per_meal_cost'] == '55.00'


def test_subscription_lifecycle(slots, student, staff, api_client, set_now):
    api_client.force_authenticate(user=student)
    created = api_client.post(
        '/api/v1/subscriptions',
        {'meal_types': ['lunch', 'dinner'], 'start_date': '2025-06-01', 'end_date': '2025-06-30'},
        format='json',
    )
    assert created.status_code == 201
    assert created.data['monthly_cost'] == '3300.00'

    coverage = api_client.get('/api/v1/subscriptions/coverage', {'meal_type': 'lunch', 'meal_date': '2025-06-14'})
    assert coverage.data['covered'] is True

    api_client.force_authenticate(user=staff)
    renewed = api_client.post(
        f"/api/v1/subscriptions/{created.data['id']}/renew", {'end_date': '2025-07-31'}, format='json'
    )
    assert renewed.status_code == 200
    assert renewed.data['end_date'] == '2025-07-31'


def test_students_cannot_subscribe_others(slots, student, other_student, login, set_now):
    response = login(student).post(
        '/api/v1/subscriptions',
        {'user_id': other_student.pk, 'meal_types': ['lunch'], 'start_date': '2025-06-01', 'end_date': '2025-06-30'},
        format='json',
    )

    assert response.status_code == 403


def test_fine_payment_and_waiver_permissions(student, other_student, admin_user, api_client, set_now):
    paid = fines.create_fine(student, 'no_show', Decimal('40'), 'No-show')
    waived = fines.create_fine(student, 'no_show', Decimal('20'), 'No-show')

    api_client.force_authenticate(user=other_student)
    assert api_client.post(f'/api/v1/fines/{paid.pk}/pay', {'payment_reference': 'X'}, format='json').status_code == 403

    api_client.force_authenticate(user=student)
    assert api_client.post(f'/api/v1/fines/{paid.pk}/pay', {'payment_reference': 'UPI-9'}, format='json').status_code == 200
    assert api_client.post(f'/api/v1/fines/{waived.pk}/waive', {'reason': 'please'}, format='json').status_code == 403
    assert api_client.get('/api/v1/fines/outstanding').data['count'] == 1

    api_client.force_authenticate(user=admin_user)
    response = api_client.post(f'/api/v1/fines/{paid.pk}/waive', {'reason': 'late'}, format='json')
    assert response.status_code == 409
    assert response.data['detail'].code == 'already_paid'


def test_guest_booking_and_its_qr(slots, student, other_student, api_client, set_now):
    api_client.force_authenticate(user=student)
    created = api_client.post(
        '/api/v1/bookings', {'booking_date': '2025-06-14', 'meal_types': ['lunch'], 'number_of_guests': 2},
        format='json',
    )
    assert created.status_code == 201
    assert created.data['total_amount'] == '150.00'
    assert [row['meal_type'] for row in created.data['attendance']] == ['lunch']

    booking_id = created.data['id']
    assert api_client.get(f'/api/v1/qr/booking/{booking_id}').status_code == 200

    api_client.force_authenticate(user=other_student)
    assert api_client.get(f'/api/v1/qr/booking/{booking_id}').status_code == 403


def test_prices_are_public(slots, api_client):
    response = api_client.get('/api/v1/schedule/prices')

    assert response.status_code == 200
    lunch = [entry for entry in response.data['prices'] if entry['meal_type'] == 'lunch'][0]
    assert lunch['guest_cost'] == Decimal('75.00')


def test_fine_amount_with_attended_is_rejected(slots, student, staff, login, set_now):
    confirmation = MealConfirmation.objects.create(user=student, meal_date='2025-06-14', meal_type='breakfast')

    response = login(staff).post(
        f'/api/v1/confirmations/{confirmation.pk}/attendance',
        {'attended': True, 'fine_amount': '25.00'},
        format='json',
    )

    assert response.status_code == 400
    assert MealConfirmation.objects.get(pk=confirmation.pk).attendance_status == 'PENDING'
    assert not Fine.objects.exists()


def test_staff_bulk_cancel(slots, student, staff, login, set_now):
    pending = MealConfirmation.objects.create(user=student, meal_date='2025-06-15', meal_type='lunch')

    response = login(staff).post(
        '/api/v1/confirmations/bulk-cancel', {'confirmation_ids': [pending.pk, 999999]}, format='json'
    )

    assert response.status_code == 200
    assert response.data['successful'] == 1
    assert response.data['errors'] == [{'confirmation_id': 999999, 'error': 'Meal confirmation not found'}]


def test_students_cannot_bulk_cancel(slots, student, login, set_now):
    response = login(student).post('/api/v1/confirmations/bulk-cancel', {'confirmation_ids': [1]}, format='json')

    assert response.status_code == 403


def test_weekly_views_for_the_current_user(slots, student, other_student, login, set_now):
    MealConfirmation.objects.create(user=student, meal_date='2025-06-15', meal_type='dinner')
    MealConfirmation.objects.create(user=other_student, meal_date='2025-06-15', meal_type='lunch')
    client = login(student)

    week = client.get('/api/v1/confirmations/weekly').data['week']
    assert len(week) == 7
    assert week[1]['meals']['dinner']['confirmed'] is True
    assert week[1]['meals']['lunch']['confirmed'] is False

    stats = client.get('/api/v1/confirmations/weekly-stats', {'week_start': '2025-06-15'})
    assert stats.status_code == 200
    assert stats.data['stats']['dinner']['pending'] == 1
    assert 'lunch' not in stats.data['stats']


def test_confirmations_report_endpoint(slots, student, staff, login, set_now):
    MealConfirmation.objects.create(user=student, meal_date='2025-06-10', meal_type='lunch',
                                    attendance_status='ATTENDED')

    response = login(staff).get(
        '/api/v1/reports/confirmations', {'start_date': '2025-06-01', 'end_date': '2025-06-30', 'role': 'student'}
    )
    assert response.status_code == 200
    assert response.data['summary']['attendance_rate'] == 100.0

    backwards = login(staff).get('/api/v1/reports/confirmations', {'start_date': '2025-06-30', 'end_date': '2025-06-01'})
    assert backwards.status_code == 400
    assert login(student).get('/api/v1/reports/confirmations').status_code == 403


def test_payment_qr_scanned_at_the_counter(slots, student, staff, api_client, set_now):
    api_client.force_authenticate(user=student)
    booking = api_client.post(
        '/api/v1/bookings', {'booking_date': '2025-06-14', 'meal_types': ['lunch'], 'number_of_guests': 2},
        format='json',
    ).data
    issued = api_client.post(f"/api/v1/payments/booking/{booking['id']}/qr")
    assert issued.status_code == 201
    assert issued.data['payment']['amount'] == '150.00'
    assert issued.data['image']

    api_client.force_authenticate(user=staff)
    scan = {'qr_data': issued.data['qr']['data'], 'qr_hash': issued.data['qr']['hash'], 'payment_confirmed': True}
    confirmed = api_client.post('/api/v1/payments/scan', scan, format='json')
    assert confirmed.status_code == 200
    assert confirmed.data['payment_status'] == 'confirmed'
    assert api_client.get(f"/api/v1/bookings/{booking['id']}").data['payment_status'] == 'paid'

    again = api_client.post('/api/v1/payments/scan', scan, format='json')
    assert again.status_code == 409

    daily = api_client.get('/api/v1/payments/daily', {'date': '2025-06-14'})
    assert daily.data['collection']['confirmed']['count'] == 1
    assert [row['id'] for row in api_client.get('/api/v1/payments/history').data] == [confirmed.data['id']]
