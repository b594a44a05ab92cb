from datetime import date, datetime

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from apps.core.clock import FrozenClock
from apps.core.models import MessMember
from apps.core.services import schedule, subscriptions

TODAY = date(2025, 6, 14)


@pytest.fixture
def clock():
    """Saturday 2025-06-14, 08:00 in the mess timezone"""
    return FrozenClock(datetime(2025, 6, 14, 8, 0))


@pytest.fixture
def slots(db):
    return {slot.meal_type: slot for slot in schedule.seed_default_slots()}


@pytest.fixture
def make_user(db):
    def _make(username, role='student'):
        user = get_user_model().objects.create_user(username=username, password='pass1234')
        MessMember.objects.create(user=user, role=role, member_code=username.upper())
        return user
    return _make


@pytest.fixture
def student(make_user):
    return make_user('student1')


@pytest.fixture
def other_student(make_user):
    return make_user('student2')


@pytest.fixture
def employee(make_user):
    return make_user('employee1', role='employee')


@pytest.fixture
def staff(make_user):
    return make_user('staff1', role='mess_staff')


@pytest.fixture
def admin_user(make_user):
    return make_user('admin1', role='admin')


@pytest.fixture
def subscribe():
    def _subscribe(user, meal_types=('breakfast', 'lunch', 'snacks', 'dinner'),
                   start_date=date(2025, 6, 1), end_date=date(2025, 6, 30)):
        return subscriptions.create_subscription(user, list(meal_types), start_date, end_date)
    return _subscribe


@pytest.fixture
def api_client():
    return APIClient()
