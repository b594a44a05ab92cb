"""Guest bookings: the booking side of QR attendance."""

import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction

from apps.utils.decorators import storage_errors
from ..clock import default_clock
from ..exceptions import NotFound, PastDate, ValidationFailed
from ..models import MEAL_TYPES, BookingAttendance, GuestBooking, MealSlot

logger = logging.getLogger(__name__)


@storage_errors
def create_guest_booking(booked_by, booking_date, meal_types, number_of_guests=1, clock=None):
    clock = clock or default_clock
    if not meal_types:
        raise ValidationFailed('At least one meal type is required')
    unknown = [meal_type for meal_type in meal_types if meal_type not in MEAL_TYPES]
    if unknown:
        raise ValidationFailed(f"Unrecognized meal type: {', '.join(unknown)}")
    if number_of_guests < 1:
        raise ValidationFailed('At least one guest is required')
    if booking_date < clock.today():
        raise PastDate(f"Cannot book meals for past date: {booking_date}")

    slots = {slot.meal_type: slot for slot in MealSlot.objects.filter(meal_type__in=meal_types, is_active=True)}
    missing = [meal_type for meal_type in meal_types if meal_type not in slots]
    if missing:
        raise NotFound(f"Meal timing not found for {', '.join(missing)}")

    rate = Decimal(settings.MESS_CONFIG['guest_rate_multiplier'])
    total = sum((slots[meal_type].per_meal_cost for meal_type in meal_types), Decimal('0'))
    total = (total * rate * number_of_guests).quantize(Decimal('0.01'))

    with transaction.atomic():
        booking = GuestBooking.objects.create(
            booked_by=booked_by,
            booking_date=booking_date,
            number_of_guests=number_of_guests,
            meal_types=list(dict.fromkeys(meal_types)),
            total_amount=total,
        )

    logger.info(f"Guest booking {booking.pk} for {booking_date}: {', '.join(booking.meal_types)}")
    return booking


@storage_errors
def mark_attendance(booking, meal_type, scanner, clock=None):
    """Mark one booked meal as attended; False when it already was"""
    clock = clock or default_clock
    updated = BookingAttendance.objects.filter(
        booking=booking,
        meal_type=meal_type,
        attended=False,
    ).update(attended=True, scanned_at=clock.now(), scanner=scanner)
    return bool(updated)


def qr_expiry(booking, clock=None):
    """Booking QR stays valid until the last booked meal ends plus a grace buffer"""
    clock = clock or default_clock
    end_times = list(
        MealSlot.objects.filter(meal_type__in=booking.meal_types).values_list('end_time', flat=True)
    )
    if not end_times:
        raise NotFound('No meal timings found for this booking')

    buffer = timedelta(hours=settings.MESS_CONFIG['qr_expiry_buffer_hours'])
    return clock.combine(booking.booking_date, max(end_times)) + buffer
