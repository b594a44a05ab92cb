"""
Subscription resolver.

Decides whether a meal on a date is absorbed by the user's active
subscription or billed per meal, and manages the subscription lifecycle.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from apps.utils.decorators import storage_errors
from ..clock import default_clock
from ..exceptions import AlreadyExists, NotFound, ValidationFailed
from ..models import MEAL_TYPES, MessSubscription

logger = logging.getLogger(__name__)


@dataclass
class Coverage:
    covered: bool
    subscription: Optional[MessSubscription]
    message: str


@storage_errors
def find_active(user, on_date):
    return MessSubscription.objects.filter(
        user=user,
        status='active',
        start_date__lte=on_date,
        end_date__gte=on_date,
    ).first()


def check_coverage(user, meal_type, on_date):
    subscription = find_active(user, on_date)

    if subscription is None:
        return Coverage(False, None, 'No active subscription found')

    if meal_type not in subscription.meal_types:
        return Coverage(False, subscription, 'Meal type not included in subscription')

    return Coverage(True, subscription, 'Valid subscription found')


def monthly_cost_for(subscription_type, meal_types):
    rates = settings.MESS_CONFIG['subscription_rates'].get(subscription_type)
    if rates is None:
        raise ValidationFailed(f"Unknown subscription type: {subscription_type}")
    return sum((Decimal(rates.get(meal_type, 0)) for meal_type in meal_types), Decimal('0'))


def _validate_meal_types(meal_types):
    if not meal_types:
        raise ValidationFailed("At least one meal type is required")
    unknown = [meal_type for meal_type in meal_types if meal_type not in MEAL_TYPES]
    if unknown:
        raise ValidationFailed(f"Unrecognized meal type: {', '.join(unknown)}")


@storage_errors
def create_subscription(user, meal_types, start_date, end_date, subscription_type='hostel_student',
                        monthly_cost=None, payment_reference=''):
    _validate_meal_types(meal_types)
    if start_date > end_date:
        raise ValidationFailed("Subscription start date must not be after its end date")

    if monthly_cost is None:
        monthly_cost = monthly_cost_for(subscription_type, meal_types)

    if MessSubscription.objects.filter(user=user, status='active').exists():
        raise AlreadyExists('Active subscription already exists')

    try:
        with transaction.atomic():
            subscription = MessSubscription.objects.create(
                user=user,
                subscription_type=subscription_type,
                meal_types=list(meal_types),
                monthly_cost=monthly_cost,
                start_date=start_date,
                end_date=end_date,
                payment_reference=payment_reference or '',
            )
    except IntegrityError:
        raise AlreadyExists('Active subscription already exists')

    logger.info(f"Created {subscription_type} subscription {subscription.pk} for user {user.pk}")
    return subscription


def _get(subscription_id):
    try:
        return MessSubscription.objects.get(pk=subscription_id)
    except MessSubscription.DoesNotExist:
        raise NotFound('Subscription not found')


@storage_errors
def renew_subscription(subscription_id, new_end_date, payment_reference='', clock=None):
    clock = clock or default_clock
    subscription = _get(subscription_id)

    if new_end_date <= subscription.end_date:
        raise ValidationFailed("Renewal must extend the subscription end date")

    subscription.end_date = new_end_date
    subscription.status = 'active'
    subscription.payment_reference = payment_reference or subscription.payment_reference
    subscription.renewed_at = clock.now()

    try:
        with transaction.atomic():
            subscription.save()
    except IntegrityError:
        raise AlreadyExists('Another active subscription already exists')

    logger.info(f"Renewed subscription {subscription.pk} until {new_end_date}")
    return subscription


@storage_errors
def update_status(subscription_id, status):
    if status not in dict(MessSubscription.STATUS_CHOICES):
        raise ValidationFailed('Status must be active, expired, or suspended')

    subscription = _get(subscription_id)
    subscription.status = status
    try:
        with transaction.atomic():
            subscription.save(update_fields=['status'])
    except IntegrityError:
        raise AlreadyExists('Another active subscription already exists')
    return subscription


@storage_errors
def expire_old_subscriptions(clock=None):
    clock = clock or default_clock
    expired = MessSubscription.objects.filter(
        status='active',
        end_date__lt=clock.today(),
    ).update(status='expired')

    if expired:
        logger.info(f"Expired {expired} subscriptions")
    return expired


@storage_errors
def user_subscriptions(user, include_expired=False):
    queryset = MessSubscription.objects.filter(user=user)
    if not include_expired:
        queryset = queryset.exclude(status='expired')
    return list(queryset.order_by('-created_at'))
