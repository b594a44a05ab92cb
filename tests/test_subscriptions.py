from datetime import date, datetime
from decimal import Decimal

import pytest

from apps.core.exceptions import AlreadyExists, NotFound, ValidationFailed
from apps.core.models import MessSubscription
from apps.core.services import subscriptions

pytestmark = pytest.mark.django_db


def test_no_subscription_is_not_covered(student):
    coverage = subscriptions.check_coverage(student, 'lunch', date(2025, 6, 14))

    assert coverage.covered is False
    assert coverage.subscription is None


def test_coverage_depends_on_meal_type_and_dates(student, subscribe):
    subscription = subscribe(student, meal_types=['lunch', 'dinner'])

    covered = subscriptions.check_coverage(student, 'lunch', date(2025, 6, 14))
    assert covered.covered is True
    assert covered.subscription == subscription

    wrong_meal = subscriptions.check_coverage(student, 'breakfast', date(2025, 6, 14))
    assert wrong_meal.covered is False
    assert wrong_meal.subscription == subscription

    assert subscriptions.check_coverage(student, 'lunch', date(2025, 6, 30)).covered is True
    assert subscriptions.check_coverage(student, 'lunch', date(2025, 7, 1)).covered is False


def test_suspended_subscription_does_not_cover(student, subscribe):
    subscription = subscribe(student)

    subscriptions.update_status(subscription.pk, 'suspended')

    assert subscriptions.check_coverage(student, 'lunch', date(2025, 6, 14)).covered is False


def test_second_active_subscription_is_rejected(student, subscribe):
    subscribe(student)

    with pytest.raises(AlreadyExists):
        subscribe(student, meal_types=['lunch'], start_date=date(2025, 7, 1), end_date=date(2025, 7, 31))


def test_monthly_cost_comes_from_rates(student, employee):
    hostel = subscriptions.create_subscription(student, ['lunch', 'dinner'], date(2025, 6, 1), date(2025, 6, 30))
    monthly = subscriptions.create_subscription(
        employee, ['breakfast'], date(2025, 6, 1), date(2025, 6, 30), subscription_type='employee_monthly'
    )

    assert hostel.monthly_cost == Decimal('3300')
    assert monthly.monthly_cost == Decimal('900')


def test_create_validates_input(student):
    with pytest.raises(ValidationFailed):
        subscriptions.create_subscription(student, [], date(2025, 6, 1), date(2025, 6, 30))
    with pytest.raises(ValidationFailed):
        subscriptions.create_subscription(student, ['brunch'], date(2025, 6, 1), date(2025, 6, 30))
    with pytest.raises(ValidationFailed):
        subscriptions.create_subscription(student, ['lunch'], date(2025, 6, 30), date(2025, 6, 1))


def test_renewal_extends_and_reactivates(student, subscribe, clock):
    subscription = subscribe(student)
    subscriptions.update_status(subscription.pk, 'expired')

    renewed = subscriptions.renew_subscription(subscription.pk, date(2025, 7, 31), payment_reference='UPI-42', clock=clock)

    assert renewed.status == 'active'
    assert renewed.end_date == date(2025, 7, 31)
    assert renewed.payment_reference == 'UPI-42'
    assert renewed.renewed_at == clock.now()


def test_renewal_must_extend(student, subscribe):
    subscription = subscribe(student)

    with pytest.raises(ValidationFailed):
        subscriptions.renew_subscription(subscription.pk, date(2025, 6, 20))
    with pytest.raises(NotFound):
        subscriptions.renew_subscription(9999, date(2025, 8, 1))


def test_expiry_sweep(student, other_student, subscribe, clock):
    subscribe(student, end_date=date(2025, 6, 10))
    subscribe(other_student)

    assert subscriptions.expire_old_subscriptions(clock=clock) == 1
    assert MessSubscription.objects.get(user=student).status == 'expired'
    assert MessSubscription.objects.get(user=other_student).status == 'active'

    clock.set(datetime(2025, 7, 2, 0, 5))
    assert subscriptions.expire_old_subscriptions(clock=clock) == 1


def test_listing_hides_expired_by_default(student, subscribe):
    old = subscribe(student, end_date=date(2025, 6, 10))
    subscriptions.update_status(old.pk, 'expired')
    current = subscribe(student, start_date=date(2025, 6, 11))

    assert subscriptions.user_subscriptions(student) == [current]
    assert len(subscriptions.user_subscriptions(student, include_expired=True)) == 2


def test_invalid_status_is_rejected(student, subscribe):
    subscription = subscribe(student)

    with pytest.raises(ValidationFailed):
        subscriptions.update_status(subscription.pk, 'paused')
