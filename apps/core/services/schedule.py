"""
Meal schedule registry.

Holds the daily meal slots and answers the two time questions every other
component asks: what is the confirmation deadline for a meal on a date, and
which meal is being served right now.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from apps.utils.decorators import storage_errors
from ..clock import default_clock
from ..exceptions import AlreadyExists, NotFound, ValidationFailed
from ..models import MEAL_TYPES, MealSlot

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'start_time', 'end_time', 'per_meal_cost', 'confirmation_deadline_hours',
    'deadline_description', 'is_active',
)


@dataclass
class Deadline:
    can_confirm: bool
    deadline: datetime
    meal_start: datetime
    hours_before_meal: int


@dataclass
class MealWindow:
    active: Optional[MealSlot]
    upcoming: Optional[MealSlot]
    last_finished: Optional[MealSlot]
    active_slots: List[MealSlot] = field(default_factory=list)


@storage_errors
def get_active_slots():
    return list(MealSlot.objects.filter(is_active=True))


@storage_errors
def get_slot(meal_type, include_inactive=False):
    queryset = MealSlot.objects.filter(meal_type=meal_type)
    if not include_inactive:
        queryset = queryset.filter(is_active=True)
    slot = queryset.first()
    if slot is None:
        raise NotFound(f"Meal timing not found for {meal_type}")
    return slot


def compute_deadline(meal_type, target_date, clock=None, slot=None):
    """Deadline is the meal's start on target_date minus the slot's offset"""
    clock = clock or default_clock
    slot = slot or get_slot(meal_type)

    meal_start = clock.combine(target_date, slot.start_time)
    deadline = meal_start - timedelta(hours=slot.confirmation_deadline_hours)

    return Deadline(
        can_confirm=clock.now() <= deadline,
        deadline=deadline,
        meal_start=meal_start,
        hours_before_meal=slot.confirmation_deadline_hours,
    )


def resolve_current_or_upcoming(clock=None, slots=None):
    """Classify the schedule around the current time-of-day"""
    clock = clock or default_clock
    if slots is None:
        slots = get_active_slots()
    slots = sorted(slots, key=lambda s: s.start_time)
    now_time = clock.now().time()

    # Overlapping windows all count as active
    active_slots = [slot for slot in slots if slot.contains(now_time)]

    upcoming = next((slot for slot in slots if slot.start_time > now_time), None)
    if upcoming is None and slots:
        # Nothing left today; the first meal of tomorrow is next
        upcoming = slots[0]

    finished = [slot for slot in slots if slot.end_time < now_time]
    last_finished = max(finished, key=lambda s: s.end_time) if finished else None

    return MealWindow(
        active=active_slots[0] if active_slots else None,
        upcoming=upcoming,
        last_finished=last_finished,
        active_slots=active_slots,
    )


def _coerce_time(value, field_name):
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value))
    except ValueError:
        raise ValidationFailed(f"{field_name} must be a time of day (HH:MM:SS)")


def _clean_slot_data(data):
    cleaned = dict(data)
    for name in ('start_time', 'end_time'):
        if name in cleaned:
            cleaned[name] = _coerce_time(cleaned[name], name)

    if 'per_meal_cost' in cleaned:
        try:
            cleaned['per_meal_cost'] = Decimal(str(cleaned['per_meal_cost']))
        except InvalidOperation:
            raise ValidationFailed("per_meal_cost must be a decimal amount")
        if cleaned['per_meal_cost'] < 0:
            raise ValidationFailed("per_meal_cost cannot be negative")

    if 'confirmation_deadline_hours' in cleaned:
        try:
            hours = int(cleaned['confirmation_deadline_hours'])
        except (TypeError, ValueError):
            raise ValidationFailed("confirmation_deadline_hours must be a whole number of hours")
        if hours < 0:
            raise ValidationFailed("confirmation_deadline_hours cannot be negative")
        cleaned['confirmation_deadline_hours'] = hours

    return cleaned


def _check_window(slot):
    if slot.start_time >= slot.end_time:
        raise ValidationFailed(
            f"{slot.meal_type} start time {slot.start_time} must be before end time {slot.end_time}"
        )


@storage_errors
def create_slot(meal_type, start_time, end_time, per_meal_cost, confirmation_deadline_hours,
                deadline_description='', updated_by=None):
    if meal_type not in MEAL_TYPES:
        raise ValidationFailed(f"Unrecognized meal type: {meal_type}")

    data = _clean_slot_data({
        'start_time': start_time,
        'end_time': end_time,
        'per_meal_cost': per_meal_cost,
        'confirmation_deadline_hours': confirmation_deadline_hours,
    })
    slot = MealSlot(meal_type=meal_type, deadline_description=deadline_description,
                    updated_by=updated_by, **data)
    _check_window(slot)

    try:
        with transaction.atomic():
            slot.save()
    except IntegrityError:
        raise AlreadyExists(f"Meal timing for {meal_type} already exists")

    logger.info(f"Created meal slot {slot}")
    return slot


@storage_errors
def update_slot(meal_type, /, updated_by=None, **changes):
    """Apply administrative edits; slots are never deleted, only deactivated"""
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Cannot update fields: {', '.join(sorted(unknown))}")

    slot = get_slot(meal_type, include_inactive=True)
    for name, value in _clean_slot_data(changes).items():
        setattr(slot, name, value)
    _check_window(slot)

    slot.updated_by = updated_by
    slot.save()

    logger.info(f"Updated meal slot {slot} ({', '.join(sorted(changes))})")
    return slot


def deactivate_slot(meal_type, updated_by=None):
    return update_slot(meal_type, updated_by=updated_by, is_active=False)


@storage_errors
def seed_default_slots():
    """Create the configured default slots when the schedule is empty"""
    if MealSlot.objects.exists():
        return []

    created = []
    for meal_type, config in settings.MESS_CONFIG['meal_slots'].items():
        created.append(create_slot(
            meal_type,
            start_time=config['start'],
            end_time=config['end'],
            per_meal_cost=config['cost'],
            confirmation_deadline_hours=config['deadline_hours'],
        ))
    return created


@storage_errors
def meal_prices():
    """Per-meal, guest and monthly subscription prices for every active slot"""
    guest_rate = Decimal(settings.MESS_CONFIG['guest_rate_multiplier'])
    rates = settings.MESS_CONFIG['subscription_rates']

    prices = []
    for slot in sorted(get_active_slots(), key=lambda s: s.start_time):
        prices.append({
            'meal_type': slot.meal_type,
            'per_meal_cost': slot.per_meal_cost,
            'guest_cost': (slot.per_meal_cost * guest_rate).quantize(Decimal('0.01')),
            'monthly': {
                subscription_type: Decimal(str(table[slot.meal_type]))
                for subscription_type, table in rates.items()
                if slot.meal_type in table
            },
        })
    return prices
