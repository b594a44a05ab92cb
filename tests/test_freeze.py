from datetime import date, datetime

import pytest

from apps.core.exceptions import ValidationFailed
from apps.core.models import AuditLog, MealConfirmation
from apps.core.services import confirmations, freeze

pytestmark = pytest.mark.django_db

TODAY = date(2025, 6, 14)


def _confirm_today(user, *meal_types):
    for meal_type in meal_types:
        MealConfirmation.objects.create(user=user, meal_date=TODAY, meal_type=meal_type)


def test_sweep_freezes_only_meals_past_their_deadline(slots, student, clock):
    _confirm_today(student, 'breakfast', 'lunch', 'snacks', 'dinner')
    clock.set(datetime(2025, 6, 14, 10, 30))

    assert freeze.freeze_expired_meals(clock=clock) == 2

    frozen = dict(MealConfirmation.objects.values_list('meal_type', 'is_frozen'))
    assert frozen == {'breakfast': True, 'lunch': True, 'snacks': False, 'dinner': False}
    lunch = MealConfirmation.objects.get(meal_type='lunch')
    assert lunch.freeze_reason == confirmations.AUTOMATIC_FREEZE_REASON
    assert lunch.frozen_at == clock.now()


def test_repeated_sweeps_do_not_refreeze(slots, student, clock):
    _confirm_today(student, 'lunch')
    clock.set(datetime(2025, 6, 14, 10, 30))
    freeze.freeze_expired_meals(clock=clock)
    first_frozen_at = MealConfirmation.objects.get().frozen_at

    clock.advance(minutes=5)

    assert freeze.freeze_expired_meals(clock=clock) == 0
    assert MealConfirmation.objects.get().frozen_at == first_frozen_at


def test_sweep_ignores_other_days(slots, student, clock):
    MealConfirmation.objects.create(user=student, meal_date=date(2025, 6, 15), meal_type='lunch')
    clock.set(datetime(2025, 6, 14, 23, 0))

    freeze.freeze_expired_meals(clock=clock)

    assert MealConfirmation.objects.get().is_frozen is False


def test_failure_on_one_slot_does_not_stop_the_sweep(slots, student, clock, monkeypatch):
    _confirm_today(student, 'breakfast', 'lunch')
    clock.set(datetime(2025, 6, 14, 10, 30))
    real_freeze = confirmations.freeze

    def flaky(meal_type, meal_date, reason, frozen_by=None, clock=None):
        if meal_type == 'breakfast':
            raise RuntimeError('boom')
        return real_freeze(meal_type, meal_date, reason, frozen_by=frozen_by, clock=clock)

    monkeypatch.setattr(confirmations, 'freeze', flaky)

    assert freeze.freeze_expired_meals(clock=clock) == 1
    assert MealConfirmation.objects.get(meal_type='lunch').is_frozen is True


def test_manual_freeze_ahead_of_deadline(slots, student, staff, clock):
    _confirm_today(student, 'dinner')

    frozen = freeze.manual_freeze('dinner', TODAY, reason='gas leak', frozen_by=staff, clock=clock)

    assert frozen == 1
    record = MealConfirmation.objects.get()
    assert record.frozen_by == staff
    assert record.freeze_reason == 'gas leak'
    log = AuditLog.objects.get(event_type='MEAL_FROZEN')
    assert log.payload == {'meal_type': 'dinner', 'meal_date': '2025-06-14', 'reason': 'gas leak', 'frozen': 1}


def test_manual_freeze_rejects_unknown_meal(slots, staff, clock):
    with pytest.raises(ValidationFailed):
        freeze.manual_freeze('supper', TODAY, frozen_by=staff, clock=clock)
