"""Deadline freeze engine: locks confirmations once a meal's deadline passes."""

import logging

from apps.utils.decorators import storage_errors
from ..clock import default_clock
from ..exceptions import ValidationFailed
from ..models import MEAL_TYPES, AuditLog
from . import confirmations, schedule

logger = logging.getLogger(__name__)


def freeze_expired_meals(clock=None):
    """Freeze today's confirmations for every slot whose deadline has passed"""
    clock = clock or default_clock
    logger.info('Starting automatic meal freeze process')

    now = clock.now()
    today = clock.today()
    total_frozen = 0

    for slot in schedule.get_active_slots():
        try:
            deadline = schedule.compute_deadline(slot.meal_type, today, clock=clock, slot=slot)
            if now <= deadline.deadline:
                continue

            frozen = confirmations.freeze(
                slot.meal_type, today, confirmations.AUTOMATIC_FREEZE_REASON, clock=clock
            )
            total_frozen += frozen
            if frozen:
                logger.info(f"Frozen {frozen} {slot.meal_type} confirmations for {today}")
        except Exception:
            logger.exception(f"Error freezing {slot.meal_type} confirmations for {today}")

    logger.info(f"Total meals frozen: {total_frozen}")
    return total_frozen


@storage_errors
def manual_freeze(meal_type, meal_date, reason='manual_freeze', frozen_by=None, clock=None):
    """Staff freeze of an arbitrary meal and date, ahead of its deadline"""
    if meal_type not in MEAL_TYPES:
        raise ValidationFailed(f"Unrecognized meal type: {meal_type}")

    frozen = confirmations.freeze(meal_type, meal_date, reason or 'manual_freeze', frozen_by=frozen_by, clock=clock)

    AuditLog.objects.create(
        actor_type='STAFF' if frozen_by else 'SYSTEM',
        actor_id=str(frozen_by.pk) if frozen_by else None,
        event_type='MEAL_FROZEN',
        payload={
            'meal_type': meal_type,
            'meal_date': meal_date.isoformat(),
            'reason': reason,
            'frozen': frozen,
        },
    )
    logger.info(f"Manually froze {frozen} {meal_type} confirmations for {meal_date} ({reason})")
    return frozen
