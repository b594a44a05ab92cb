"""
Meal confirmation store.

One record per (user, date, meal type). Creation checks the date, the
confirmation deadline and subscription coverage; attendance and
cancellation are conditional updates so concurrent scans or cancels cannot
both succeed.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum

from apps.utils.decorators import storage_errors
from ..clock import default_clock
from ..exceptions import (
    AlreadyAttended, AlreadyExists, ConfirmationFrozen, DeadlinePassed, Forbidden,
    NotFound, PastDate, ValidationFailed,
)
from ..models import MEAL_TYPES, Fine, MealConfirmation
from . import fines, schedule, subscriptions
from .members import is_staff_member

logger = logging.getLogger(__name__)

AUTOMATIC_FREEZE_REASON = 'automatic_deadline_freeze'
BULK_CONFIRMATION_NOTE = 'Bulk confirmation by staff'


@dataclass
class CancelResult:
    status: str
    fine: Optional[Fine] = None

    @property
    def message(self):
        if self.fine is not None:
            return f"Meal confirmation cancelled with a late cancellation fine of {self.fine.amount}"
        return 'Meal confirmation cancelled'


def _format_deadline(deadline):
    return deadline.strftime('%Y-%m-%dT%H:%M:%S')


def _validate_meal_type(meal_type):
    if meal_type not in MEAL_TYPES:
        raise ValidationFailed(
            f"Unrecognized meal type: {meal_type}. Expected one of: {', '.join(MEAL_TYPES)}"
        )


def _get(confirmation_id):
    try:
        return MealConfirmation.objects.get(pk=confirmation_id)
    except MealConfirmation.DoesNotExist:
        raise NotFound('Meal confirmation not found')


@storage_errors
def create_confirmation(user, meal_date, meal_type, notes='', clock=None, enforce_deadline=True):
    clock = clock or default_clock
    _validate_meal_type(meal_type)

    if MealConfirmation.objects.filter(user=user, meal_date=meal_date, meal_type=meal_type).exists():
        raise AlreadyExists(f"{meal_type} on {meal_date} is already confirmed")

    if meal_date < clock.today():
        raise PastDate(f"Cannot confirm meals for past date: {meal_date}")

    slot = schedule.get_slot(meal_type)
    if enforce_deadline:
        deadline = schedule.compute_deadline(meal_type, meal_date, clock=clock, slot=slot)
        if not deadline.can_confirm:
            raise DeadlinePassed(f"Confirmation deadline was {_format_deadline(deadline.deadline)}")

    coverage = subscriptions.check_coverage(user, meal_type, meal_date)
    meal_cost = Decimal('0') if coverage.covered else slot.per_meal_cost

    try:
        with transaction.atomic():
            confirmation = MealConfirmation.objects.create(
                user=user,
                meal_date=meal_date,
                meal_type=meal_type,
                notes=notes or '',
                meal_cost=meal_cost,
            )
    except IntegrityError:
        raise AlreadyExists(f"{meal_type} on {meal_date} is already confirmed")

    logger.info(f"User {user.pk} confirmed {meal_type} on {meal_date} (cost {meal_cost})")
    return confirmation


@storage_errors
def record_walk_in(user, meal_type, recorded_by, method='manual', meal_cost=None, clock=None):
    """Create today's confirmation directly in the attended state"""
    clock = clock or default_clock
    _validate_meal_type(meal_type)
    today = clock.today()

    if meal_cost is None:
        coverage = subscriptions.check_coverage(user, meal_type, today)
        meal_cost = Decimal('0') if coverage.covered else schedule.get_slot(meal_type).per_meal_cost

    try:
        with transaction.atomic():
            confirmation = MealConfirmation.objects.create(
                user=user,
                meal_date=today,
                meal_type=meal_type,
                notes=settings.MESS_CONFIG['walk_in_note'],
                meal_cost=meal_cost,
                attendance_status='ATTENDED',
                attended_at=clock.now(),
                attendance_method=method,
                recorded_by=recorded_by,
                is_walk_in=True,
            )
    except IntegrityError:
        raise AlreadyExists(f"{meal_type} on {today} already has a confirmation")

    logger.info(f"Walk-in {meal_type} attendance for user {user.pk} via {method}")
    return confirmation


@storage_errors
def bulk_confirm(entries, clock=None):
    """Staff confirmation for many users; deadlines are not enforced"""
    results = {'successful': 0, 'failed': 0, 'errors': []}

    for entry in entries:
        try:
            create_confirmation(
                entry['user'],
                entry['meal_date'],
                entry['meal_type'],
                notes=BULK_CONFIRMATION_NOTE,
                clock=clock,
                enforce_deadline=False,
            )
            results['successful'] += 1
        except (AlreadyExists, PastDate, NotFound, ValidationFailed) as exc:
            results['failed'] += 1
            results['errors'].append({'user_id': entry['user'].pk, 'error': str(exc.detail)})

    return results


@storage_errors
def cancel_confirmation(confirmation_id, actor, clock=None):
    clock = clock or default_clock
    confirmation = _get(confirmation_id)

    if confirmation.user_id != actor.pk and not is_staff_member(actor):
        raise Forbidden('Only the owner or mess staff can cancel this confirmation')
    if confirmation.attended is True:
        raise AlreadyAttended('Cannot cancel a meal that has already been attended')
    if confirmation.meal_date < clock.today():
        raise PastDate('Cannot cancel past meal')
    if confirmation.is_frozen:
        raise ConfirmationFrozen(f"{confirmation.meal_type} on {confirmation.meal_date} is frozen")

    slot = schedule.get_slot(confirmation.meal_type, include_inactive=True)
    deadline = schedule.compute_deadline(confirmation.meal_type, confirmation.meal_date, clock=clock, slot=slot)

    with transaction.atomic():
        deleted, _ = MealConfirmation.objects.filter(
            pk=confirmation.pk,
            is_frozen=False,
        ).exclude(attendance_status='ATTENDED').delete()

        if not deleted:
            current = MealConfirmation.objects.filter(pk=confirmation.pk).first()
            if current is None:
                raise NotFound('Meal confirmation not found')
            if current.attended is True:
                raise AlreadyAttended('Cannot cancel a meal that has already been attended')
            raise ConfirmationFrozen(f"{current.meal_type} on {current.meal_date} is frozen")

        fine = None
        if not deadline.can_confirm and slot.per_meal_cost > 0:
            fine = fines.create_late_cancellation_fine(
                confirmation.user, confirmation.meal_type, confirmation.meal_date, slot.per_meal_cost
            )

    status = 'cancelled_with_fine' if fine else 'cancelled'
    logger.info(f"Confirmation {confirmation.pk} {status} by user {actor.pk}")
    return CancelResult(status=status, fine=fine)


@storage_errors
def record_attendance(confirmation_id, attended, recorded_by, method, fine_amount=None, notes='',
                      override=False, clock=None):
    """
    Set attendance once.

    A pending record may become attended or a no-show; a no-show may still
    become attended when the member turns up. Only a manual override may
    rewrite an attended record or re-mark a no-show. The penalty fine is
    created only when the record actually becomes a no-show.
    """
    clock = clock or default_clock
    if method not in dict(MealConfirmation.METHOD_CHOICES):
        raise ValidationFailed(f"Unknown attendance method: {method}")
    penalty = Decimal(str(fine_amount)) if fine_amount else Decimal('0')
    if penalty and attended:
        raise ValidationFailed('A no-show fine can only be applied when marking a no-show')

    new_status = 'ATTENDED' if attended else 'NO_SHOW'
    updates = {
        'attendance_status': new_status,
        'attended_at': clock.now(),
        'attendance_method': method,
        'recorded_by': recorded_by,
    }
    if notes:
        updates['notes'] = notes

    with transaction.atomic():
        if override and method == 'manual':
            current = MealConfirmation.objects.select_for_update().filter(pk=confirmation_id).first()
            if current is None:
                raise NotFound('Meal confirmation not found')
            became_no_show = not attended and current.attendance_status != 'NO_SHOW'
            if penalty and became_no_show:
                updates['fine_applied'] = penalty
            MealConfirmation.objects.filter(pk=confirmation_id).update(**updates)
        else:
            became_no_show = not attended
            if penalty:
                updates['fine_applied'] = penalty
            allowed = ['PENDING', 'NO_SHOW'] if attended else ['PENDING']
            if not MealConfirmation.objects.filter(
                pk=confirmation_id, attendance_status__in=allowed,
            ).update(**updates):
                current = _get(confirmation_id)
                if current.attended is True:
                    raise AlreadyAttended(
                        f"User has already attended {current.meal_type} on {current.meal_date}"
                    )
                raise AlreadyExists(
                    f"{current.meal_type} on {current.meal_date} is already marked as a no-show"
                )

        confirmation = _get(confirmation_id)
        if penalty > 0 and became_no_show:
            fines.create_fine(
                confirmation.user,
                'no_show',
                penalty,
                f"No-show fine for {confirmation.meal_type} meal on {confirmation.meal_date}",
                related_confirmation=confirmation,
            )

    logger.info(
        f"Attendance for confirmation {confirmation.pk} set to {new_status} via {method}"
    )
    return confirmation


@storage_errors
def freeze(meal_type, meal_date, reason, frozen_by=None, clock=None):
    """Lock every unfrozen record for the meal; returns the number locked"""
    clock = clock or default_clock
    return MealConfirmation.objects.filter(
        meal_type=meal_type,
        meal_date=meal_date,
        is_frozen=False,
    ).update(
        is_frozen=True,
        frozen_at=clock.now(),
        freeze_reason=reason,
        frozen_by=frozen_by,
    )


@storage_errors
def find_for_user(user, meal_date, meal_type):
    return MealConfirmation.objects.filter(user=user, meal_date=meal_date, meal_type=meal_type).first()


@storage_errors
def user_confirmations(user, start_date, end_date):
    if start_date > end_date:
        raise ValidationFailed('start_date must not be after end_date')
    return list(
        MealConfirmation.objects.filter(
            user=user,
            meal_date__gte=start_date,
            meal_date__lte=end_date,
        ).order_by('meal_date', 'meal_type')
    )


@storage_errors
def todays_meals(user, clock=None):
    clock = clock or default_clock
    today = clock.today()
    confirmed = {
        confirmation.meal_type: confirmation
        for confirmation in MealConfirmation.objects.filter(user=user, meal_date=today)
    }

    meals = []
    for slot in sorted(schedule.get_active_slots(), key=lambda s: s.start_time):
        deadline = schedule.compute_deadline(slot.meal_type, today, clock=clock, slot=slot)
        confirmation = confirmed.get(slot.meal_type)
        meals.append({
            'slot': slot,
            'confirmation': confirmation,
            'can_confirm': confirmation is None and deadline.can_confirm,
            'deadline_passed': not deadline.can_confirm,
            'deadline': deadline.deadline,
        })
    return meals


@storage_errors
def no_shows(meal_date, meal_type):
    return list(
        MealConfirmation.objects.filter(
            meal_date=meal_date,
            meal_type=meal_type,
        ).exclude(attendance_status='ATTENDED').select_related('user')
    )


@storage_errors
def daily_report(report_date, clock=None):
    """
    Per meal type totals for a date.

    Once the last meal of the day has started, breakfast figures come from
    the following day, which is the breakfast the mess is now preparing for.
    """
    clock = clock or default_clock
    slots = schedule.get_active_slots()

    breakfast_date = report_date
    if slots:
        last_start = max(slot.start_time for slot in slots)
        if clock.now().time() > last_start:
            breakfast_date = report_date + timedelta(days=1)

    rows = MealConfirmation.objects.filter(
        (Q(meal_date=report_date) & ~Q(meal_type='breakfast'))
        | Q(meal_date=breakfast_date, meal_type='breakfast')
    ).values('meal_type').annotate(
        total=Count('id'),
        attended=Count('id', filter=Q(attendance_status='ATTENDED')),
        not_attended=Count('id', filter=Q(attendance_status='NO_SHOW')),
        pending=Count('id', filter=Q(attendance_status='PENDING')),
        total_fines=Sum('fine_applied'),
    ).order_by('meal_type')

    report = {}
    for slot in sorted(slots, key=lambda s: s.start_time):
        report[slot.meal_type] = {
            'meal_date': breakfast_date if slot.meal_type == 'breakfast' else report_date,
            'total': 0,
            'attended': 0,
            'not_attended': 0,
            'pending': 0,
            'total_fines': Decimal('0'),
        }

    for row in rows:
        meal_type = row['meal_type']
        entry = report.setdefault(meal_type, {
            'meal_date': breakfast_date if meal_type == 'breakfast' else report_date,
        })
        entry.update({
            'total': row['total'],
            'attended': row['attended'],
            'not_attended': row['not_attended'],
            'pending': row['pending'],
            'total_fines': row['total_fines'] or Decimal('0'),
        })

    return report


@storage_errors
def bulk_cancel(confirmation_ids, actor, reason='', clock=None):
    """Staff cancellation of many confirmations with a per-item outcome"""
    results = {
        'successful': 0,
        'failed': 0,
        'fined': 0,
        'errors': [],
        'reason': reason or 'Bulk cancellation by staff',
    }

    for confirmation_id in confirmation_ids:
        try:
            outcome = cancel_confirmation(confirmation_id, actor, clock=clock)
        except (AlreadyAttended, ConfirmationFrozen, Forbidden, NotFound, PastDate) as exc:
            results['failed'] += 1
            results['errors'].append({'confirmation_id': confirmation_id, 'error': str(exc.detail)})
            continue
        results['successful'] += 1
        if outcome.fine is not None:
            results['fined'] += 1

    logger.info(
        f"Bulk cancellation by user {actor.pk}: {results['successful']} cancelled, {results['failed']} failed"
    )
    return results


@storage_errors
def weekly_status(user, clock=None):
    """Confirmed and frozen flags for each meal over the next seven days"""
    clock = clock or default_clock
    today = clock.today()
    days = [today + timedelta(days=offset) for offset in range(7)]

    records = MealConfirmation.objects.filter(
        user=user,
        meal_date__gte=days[0],
        meal_date__lte=days[-1],
    ).values_list('meal_date', 'meal_type', 'is_frozen')
    found = {(meal_date, meal_type): is_frozen for meal_date, meal_type, is_frozen in records}

    week = []
    for day in days:
        meals = {}
        for meal_type in MEAL_TYPES:
            confirmed = (day, meal_type) in found
            meals[meal_type] = {
                'confirmed': confirmed,
                'frozen': confirmed and found[(day, meal_type)],
            }
        week.append({'date': day, 'meals': meals})
    return week


def week_start_for(on_date):
    # Weeks start on Sunday
    return on_date - timedelta(days=(on_date.weekday() + 1) % 7)


def _status_counts(queryset, group_by):
    return queryset.values(*group_by).annotate(
        total=Count('id'),
        attended=Count('id', filter=Q(attendance_status='ATTENDED')),
        not_attended=Count('id', filter=Q(attendance_status='NO_SHOW')),
        pending=Count('id', filter=Q(attendance_status='PENDING')),
        total_fines=Sum('fine_applied'),
    ).order_by(*group_by)


@storage_errors
def weekly_stats(user, week_start=None, clock=None):
    clock = clock or default_clock
    week_start = week_start or week_start_for(clock.today())
    rows = _status_counts(
        MealConfirmation.objects.filter(
            user=user,
            meal_date__gte=week_start,
            meal_date__lt=week_start + timedelta(days=7),
        ),
        ['meal_type'],
    )

    stats = {}
    for row in rows:
        stats[row['meal_type']] = {
            'total': row['total'],
            'attended': row['attended'],
            'not_attended': row['not_attended'],
            'pending': row['pending'],
            'total_fines': row['total_fines'] or Decimal('0'),
        }
    return {'week_start': week_start, 'stats': stats}


@storage_errors
def confirmations_report(start_date, end_date, meal_type=None, role=None):
    """Confirmation and attendance totals for a date range, by day and by meal"""
    if start_date > end_date:
        raise ValidationFailed('start_date must not be after end_date')
    if meal_type:
        _validate_meal_type(meal_type)

    queryset = MealConfirmation.objects.filter(meal_date__gte=start_date, meal_date__lte=end_date)
    if meal_type:
        queryset = queryset.filter(meal_type=meal_type)
    if role:
        queryset = queryset.filter(user__mess_member__role=role)

    totals = queryset.aggregate(
        total=Count('id'),
        attended=Count('id', filter=Q(attendance_status='ATTENDED')),
        total_fines=Sum('fine_applied'),
    )
    attendance_rate = 0.0
    if totals['total']:
        attendance_rate = round(totals['attended'] * 100 / totals['total'], 2)

    def _rows(group_by):
        return [
            {**row, 'total_fines': row['total_fines'] or Decimal('0')}
            for row in _status_counts(queryset, group_by)
        ]

    return {
        'date_range': {'start_date': start_date, 'end_date': end_date},
        'filters': {'meal_type': meal_type, 'role': role},
        'summary': {
            'total_confirmations': totals['total'],
            'total_attendance': totals['attended'],
            'attendance_rate': attendance_rate,
            'total_fines': totals['total_fines'] or Decimal('0'),
        },
        'daily_breakdown': _rows(['meal_date']),
        'meal_type_breakdown': _rows(['meal_type']),
    }
