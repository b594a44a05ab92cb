import hashlib
from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from apps.core.models import MealSlot, StaffToken

pytestmark = pytest.mark.django_db


def test_init_meal_slots_seeds_once():
    out = StringIO()
    call_command('init_meal_slots', stdout=out)

    assert MealSlot.objects.count() == 4
    assert 'Created 4 meal slots' in out.getvalue()

    out = StringIO()
    call_command('init_meal_slots', stdout=out)
    assert 'already exist' in out.getvalue()


def test_create_staff_token_prints_the_secret_once(staff):
    out = StringIO()
    call_command('create_staff_token', staff.username, '--label', 'Gate 1', '--days', '7', stdout=out)

    token = out.getvalue().strip().splitlines()[-1]
    staff_token = StaffToken.objects.get()
    assert staff_token.user == staff
    assert staff_token.label == 'Gate 1'
    assert staff_token.token_hash == hashlib.sha256(token.encode()).hexdigest()


def test_create_staff_token_rejects_non_staff(student):
    with pytest.raises(CommandError):
        call_command('create_staff_token', student.username, stdout=StringIO())
