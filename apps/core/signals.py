import logging

from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import AuditLog, BookingAttendance, GuestBooking, MealSlot

logger = logging.getLogger(__name__)


@receiver(post_save, sender=GuestBooking)
def create_booking_attendance(sender, instance, created, **kwargs):
    """One attendance sub-record per booked meal type"""
    if not created:
        return
    BookingAttendance.objects.bulk_create([
        BookingAttendance(booking=instance, meal_type=meal_type)
        for meal_type in instance.meal_types
    ])


@receiver(post_save, sender=MealSlot)
def audit_schedule_change(sender, instance, created, **kwargs):
    # Fine assessment derives due times from the schedule each minute,
    # so edits are picked up without re-arming anything here
    AuditLog.objects.create(
        actor_type='STAFF' if instance.updated_by_id else 'SYSTEM',
        actor_id=str(instance.updated_by_id) if instance.updated_by_id else None,
        event_type='MEAL_SLOT_CREATED' if created else 'MEAL_SLOT_UPDATED',
        payload={
            'meal_type': instance.meal_type,
            'start_time': instance.start_time.isoformat(),
            'end_time': instance.end_time.isoformat(),
            'per_meal_cost': str(instance.per_meal_cost),
            'confirmation_deadline_hours': instance.confirmation_deadline_hours,
            'is_active': instance.is_active,
        },
    )
    logger.info(f"Meal schedule changed: {instance}")
