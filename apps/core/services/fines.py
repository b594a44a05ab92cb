"""
Fines and the scheduled fine assessment process.

Assessment runs once per meal slot shortly after the slot's service window
closes. It reads that meal's confirmations for the day, counts offenses
(no-shows and unconfirmed walk-ins) per student per month, and fines a
student once the monthly count passes the configured threshold.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum

from apps.utils.decorators import storage_errors
from ..clock import default_clock
from ..exceptions import AlreadyPaid, AlreadyWaived, NotFound, ValidationFailed
from ..models import AuditLog, Fine, FineAssessmentRun, MealConfirmation, MealSlot, MessMember

logger = logging.getLogger(__name__)


@dataclass
class AssessmentSummary:
    meal_type: str
    run_date: object
    assessed: int = 0
    offenses: int = 0
    fines_created: int = 0
    errors: int = 0


def month_key(on_date):
    return f"{on_date.year}-{on_date.month:02d}"


@storage_errors
def create_fine(user, fine_type, amount, reason, related_confirmation=None, meal_date=None, meal_type=''):
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValidationFailed("Fine amount must be positive")
    if fine_type not in dict(Fine.TYPE_CHOICES):
        raise ValidationFailed(f"Unknown fine type: {fine_type}")

    if related_confirmation is not None:
        meal_date = meal_date or related_confirmation.meal_date
        meal_type = meal_type or related_confirmation.meal_type

    fine = Fine.objects.create(
        user=user,
        fine_type=fine_type,
        amount=amount,
        reason=reason,
        related_confirmation=related_confirmation,
        meal_date=meal_date,
        meal_type=meal_type or '',
    )
    logger.info(f"Created {fine_type} fine {fine.pk} of {amount} for user {user.pk}")
    return fine


def create_late_cancellation_fine(user, meal_type, meal_date, per_meal_cost):
    multiplier = Decimal(settings.MESS_CONFIG['late_cancellation_multiplier'])
    amount = (Decimal(per_meal_cost) * multiplier).quantize(Decimal('0.01'))
    return create_fine(
        user,
        'late_cancellation',
        amount,
        f"Late cancellation for {meal_type} meal on {meal_date}",
        meal_date=meal_date,
        meal_type=meal_type,
    )


@storage_errors
def record_offense(member, on_date):
    """Increment the member's offense counter for the month of on_date"""
    current = month_key(on_date)

    with transaction.atomic():
        member = MessMember.objects.select_for_update().get(pk=member.pk)
        if member.offense_month == current:
            member.offense_count += 1
        elif member.offense_month > current:
            # The counter already moved on to a later month
            logger.warning(f"Offense for {current} arrived after member {member.pk} reached {member.offense_month}")
            return 0
        else:
            member.offense_month = current
            member.offense_count = 1
        member.save(update_fields=['offense_count', 'offense_month', 'updated_at'])

    return member.offense_count


def _is_offense(confirmation):
    # A walk-in was attended but never pre-confirmed
    return confirmation.attended is not True or confirmation.is_walk_in


@storage_errors
def assess_meal(meal_type, run_date=None, clock=None):
    clock = clock or default_clock
    run_date = run_date or clock.today()
    threshold = settings.MESS_CONFIG['offense_threshold']
    summary = AssessmentSummary(meal_type=meal_type, run_date=run_date)

    slot = MealSlot.objects.filter(meal_type=meal_type).first()
    meal_cost = slot.per_meal_cost if slot and slot.per_meal_cost else Decimal('0')

    confirmations = MealConfirmation.objects.filter(
        meal_date=run_date,
        meal_type=meal_type,
    ).select_related('user')

    for confirmation in confirmations:
        try:
            with transaction.atomic():
                member = MessMember.objects.filter(user_id=confirmation.user_id).first()
                if member is None or member.role != 'student':
                    continue

                summary.assessed += 1
                if not _is_offense(confirmation):
                    continue

                offense_count = record_offense(member, run_date)
                summary.offenses += 1

                if offense_count > threshold and meal_cost > 0:
                    create_fine(
                        confirmation.user,
                        'multiple_offense',
                        meal_cost,
                        f"Mess offense for {meal_type} on {run_date} ({offense_count} this month)",
                        related_confirmation=confirmation,
                    )
                    summary.fines_created += 1
        except Exception:
            summary.errors += 1
            logger.exception(f"Error assessing {meal_type} confirmation {confirmation.pk}")

    logger.info(
        f"Fine assessment for {meal_type} on {run_date}: {summary.assessed} assessed, "
        f"{summary.offenses} offenses, {summary.fines_created} fines"
    )
    return summary


@storage_errors
def run_fine_assessment(meal_type, run_date, clock=None):
    """Assess a slot for a date at most once; returns None when already run"""
    clock = clock or default_clock
    try:
        with transaction.atomic():
            run = FineAssessmentRun.objects.create(meal_type=meal_type, run_date=run_date)
    except IntegrityError:
        logger.info(f"Fine assessment for {meal_type} on {run_date} already ran")
        return None

    try:
        summary = assess_meal(meal_type, run_date=run_date, clock=clock)
    except Exception:
        # Release the slot so a retry can assess it
        run.delete()
        raise

    run.assessed_count = summary.assessed
    run.offense_count = summary.offenses
    run.fines_created = summary.fines_created
    run.finished_at = clock.now()
    run.save(update_fields=['assessed_count', 'offense_count', 'fines_created', 'finished_at'])
    return summary


def due_fine_assessments(slots, clock=None):
    """(meal_type, run_date) pairs whose assessment time has arrived today and have not run yet"""
    clock = clock or default_clock
    now = clock.now()
    today = now.date()
    delay = timedelta(minutes=settings.MESS_CONFIG['fine_delay_minutes'])

    run_dates = (today - timedelta(days=1), today)
    already_run = set(
        FineAssessmentRun.objects.filter(run_date__in=run_dates).values_list('meal_type', 'run_date')
    )

    due = []
    for slot in slots:
        # A late slot's run time may roll past midnight into today
        for run_date in run_dates:
            run_at = clock.combine(run_date, slot.end_time) + delay
            if run_at.date() != today or now < run_at:
                continue
            if (slot.meal_type, run_date) not in already_run:
                due.append((slot.meal_type, run_date))
    return due


def get_fine(fine_id):
    fine = Fine.objects.filter(pk=fine_id).first()
    if fine is None:
        raise NotFound('Fine not found')
    return fine


def _settled_error(fine):
    if fine.is_paid:
        return AlreadyPaid()
    return AlreadyWaived()


@storage_errors
def pay_fine(fine_id, payment_reference, paid_by=None, clock=None):
    clock = clock or default_clock
    updated = Fine.objects.filter(pk=fine_id, is_paid=False, is_waived=False).update(
        is_paid=True,
        payment_reference=payment_reference,
        paid_at=clock.now(),
        paid_by=paid_by,
    )
    fine = get_fine(fine_id)
    if not updated:
        raise _settled_error(fine)

    logger.info(f"Fine {fine_id} paid (reference {payment_reference})")
    return fine


@storage_errors
def waive_fine(fine_id, waived_by, reason, clock=None):
    clock = clock or default_clock
    updated = Fine.objects.filter(pk=fine_id, is_paid=False, is_waived=False).update(
        is_waived=True,
        waived_by=waived_by,
        waiver_reason=reason,
        waived_at=clock.now(),
    )
    fine = get_fine(fine_id)
    if not updated:
        raise _settled_error(fine)

    AuditLog.objects.create(
        actor_type='STAFF',
        actor_id=str(waived_by.pk) if waived_by else None,
        event_type='FINE_WAIVED',
        payload={'fine_id': fine.pk, 'amount': str(fine.amount), 'reason': reason},
    )
    logger.info(f"Fine {fine_id} waived by {waived_by.pk if waived_by else 'system'}")
    return fine


@storage_errors
def user_fines(user, status=None):
    queryset = Fine.objects.filter(user=user)
    if status == 'paid':
        queryset = queryset.filter(is_paid=True)
    elif status == 'unpaid':
        queryset = queryset.filter(is_paid=False, is_waived=False)
    elif status == 'waived':
        queryset = queryset.filter(is_waived=True)
    elif status is not None:
        raise ValidationFailed('Status must be paid, unpaid, or waived')
    return list(queryset.order_by('-created_at'))


@storage_errors
def outstanding_total(user):
    result = Fine.objects.filter(user=user, is_paid=False, is_waived=False).aggregate(
        total_amount=Sum('amount'),
        count=Count('id'),
    )
    return {
        'total_amount': result['total_amount'] or Decimal('0'),
        'count': result['count'],
    }
