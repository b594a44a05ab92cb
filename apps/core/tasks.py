from celery import shared_task
from datetime import date
import logging

from .services import fines, freeze, schedule, subscriptions

logger = logging.getLogger(__name__)


@shared_task
def freeze_expired_meals():
    """Freeze today's confirmations whose deadline has passed"""
    return freeze.freeze_expired_meals()


@shared_task
def dispatch_fine_assessments():
    """Queue an assessment for every slot whose service window closed long enough ago"""
    due = fines.due_fine_assessments(schedule.get_active_slots())

    for meal_type, run_date in due:
        assess_fines_for_meal.delay(meal_type, run_date.isoformat())

    return len(due)


@shared_task(bind=True, max_retries=3)
def assess_fines_for_meal(self, meal_type, run_date):
    """Run the fine assessment for one meal on one date, at most once"""
    try:
        summary = fines.run_fine_assessment(meal_type, date.fromisoformat(run_date))
    except Exception as exc:
        logger.error(f"Fine assessment for {meal_type} on {run_date} failed: {exc}")
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

    if summary is None:
        return None
    return {
        'assessed': summary.assessed,
        'offenses': summary.offenses,
        'fines_created': summary.fines_created,
        'errors': summary.errors,
    }


@shared_task
def expire_subscriptions():
    return subscriptions.expire_old_subscriptions()
