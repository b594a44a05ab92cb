"""
QR attendance: verifies a scanned token and records attendance for the meal
being served right now.

Every scan, allowed or blocked, leaves a ScanEvent row behind for the staff
audit trail. Failures still propagate to the caller as domain errors.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.contrib.auth import get_user_model

from apps.utils import qr_utils
from ..clock import default_clock
from ..exceptions import (
    AlreadyAttended, AlreadyExists, InvalidSignature, MealNotBooked, MessError,
    NoActiveMealWindow, NoActiveSubscription, NotFound,
)
from ..models import GuestBooking, MealConfirmation, ScanEvent
from . import bookings, confirmations, schedule, subscriptions

logger = logging.getLogger(__name__)

BLOCKED_RESULTS = (
    (InvalidSignature, 'BLOCKED_QR_INVALID'),
    (NotFound, 'BLOCKED_NOT_FOUND'),
    (NoActiveMealWindow, 'BLOCKED_NO_MEAL_WINDOW'),
    (NoActiveSubscription, 'BLOCKED_NO_SUBSCRIPTION'),
    (MealNotBooked, 'BLOCKED_NOT_BOOKED'),
    (AlreadyAttended, 'BLOCKED_DUPLICATE'),
)


@dataclass
class ScanResult:
    status: str
    kind: str
    meal_type: str
    was_confirmed: bool
    scan_event: ScanEvent
    confirmation: Optional[MealConfirmation] = None
    booking: Optional[GuestBooking] = None

    @property
    def message(self):
        if self.status == 'walk_in_attendance':
            return f"Walk-in attendance recorded for {self.meal_type}"
        return f"Attendance marked for {self.meal_type}"


def profile_qr(user, clock=None):
    """Rotating attendance QR identifying a user"""
    return qr_utils.generate_qr_payload(user.pk, qr_utils.PROFILE_KIND, clock=clock)


def booking_qr(booking, clock=None):
    """Booking QR, valid until the last booked meal is over"""
    expires_at = bookings.qr_expiry(booking, clock=clock)
    return qr_utils.generate_qr_payload(booking.pk, qr_utils.BOOKING_KIND, expires_at=expires_at, clock=clock)


def _blocked_result(exc):
    for error_class, result in BLOCKED_RESULTS:
        if isinstance(exc, error_class):
            return result
    return None


def scan(qr_data, qr_hash, scanner, device_info='', staff_token=None, clock=None):
    """Verify a scanned QR and record attendance for the current meal"""
    clock = clock or default_clock
    event = ScanEvent(scanner=scanner, staff_token=staff_token, device_info=device_info or '')

    try:
        payload = qr_utils.verify_qr_payload(qr_data, qr_hash, clock=clock)
        event.subject_id = int(payload['sub'])

        if payload['kind'] == qr_utils.PROFILE_KIND:
            event.kind = 'profile'
            result = _scan_profile(event, scanner, clock)
        elif payload['kind'] == qr_utils.BOOKING_KIND:
            event.kind = 'booking'
            result = _scan_booking(event, scanner, clock)
        else:
            logger.warning(f"QR rejected: unknown kind {payload['kind']!r}")
            raise InvalidSignature()
    except MessError as exc:
        event.result = _blocked_result(exc)
        if event.result is not None:
            event.save()
            logger.info(f"Scan blocked: {event.result} ({event.kind}:{event.subject_id})")
        raise

    return result


def _active_slots(clock):
    window = schedule.resolve_current_or_upcoming(clock=clock)
    if not window.active_slots:
        raise NoActiveMealWindow()
    return window.active_slots


def _scan_profile(event, scanner, clock):
    user = get_user_model().objects.filter(pk=event.subject_id, is_active=True).first()
    if user is None:
        raise NotFound('User not found')

    today = clock.today()
    slots = _active_slots(clock)
    event.meal_type = slots[0].meal_type

    chosen = None
    attended_slot = None
    for slot in slots:
        if not subscriptions.check_coverage(user, slot.meal_type, today).covered:
            continue
        confirmation = confirmations.find_for_user(user, today, slot.meal_type)
        if confirmation is not None and confirmation.attended is True:
            attended_slot = attended_slot or slot
            continue
        chosen = (slot, confirmation)
        break

    if chosen is None:
        if attended_slot is not None:
            event.meal_type = attended_slot.meal_type
            raise AlreadyAttended(f"User has already attended {attended_slot.meal_type} today")
        raise NoActiveSubscription(
            f"No active subscription covers {' or '.join(slot.meal_type for slot in slots)}"
        )

    slot, confirmation = chosen
    event.meal_type = slot.meal_type

    if confirmation is not None:
        confirmation = confirmations.record_attendance(
            confirmation.pk, True, scanner, 'qr_code', clock=clock
        )
        status = 'attendance_marked'
        event.result = 'ALLOWED'
    else:
        try:
            confirmation = confirmations.record_walk_in(
                user, slot.meal_type, scanner, method='qr_code', meal_cost=Decimal('0'), clock=clock
            )
        except AlreadyExists:
            # A concurrent scan created the record first
            raise AlreadyAttended(f"User has already attended {slot.meal_type} today")
        status = 'walk_in_attendance'
        event.result = 'WALK_IN'

    event.save()
    logger.info(f"Scan {event.result}: user {user.pk} {slot.meal_type}")
    return ScanResult(
        status=status,
        kind='profile',
        meal_type=slot.meal_type,
        was_confirmed=status == 'attendance_marked',
        scan_event=event,
        confirmation=confirmation,
    )


def _scan_booking(event, scanner, clock):
    booking = GuestBooking.objects.filter(pk=event.subject_id).first()
    if booking is None:
        raise NotFound('Booking not found')

    slots = _active_slots(clock)
    event.meal_type = slots[0].meal_type

    if booking.booking_date != clock.today():
        raise MealNotBooked(f"Booking is for {booking.booking_date}")

    booked = [slot for slot in slots if slot.meal_type in booking.meal_types]
    if not booked:
        raise MealNotBooked(f"{event.meal_type} is not part of this booking")

    for slot in booked:
        event.meal_type = slot.meal_type
        if bookings.mark_attendance(booking, slot.meal_type, scanner, clock=clock):
            event.result = 'ALLOWED'
            event.save()
            logger.info(f"Scan ALLOWED: booking {booking.pk} {slot.meal_type}")
            return ScanResult(
                status='attendance_marked',
                kind='booking',
                meal_type=slot.meal_type,
                was_confirmed=True,
                scan_event=event,
                booking=booking,
            )

    raise AlreadyAttended(f"Guest attendance for {event.meal_type} already recorded")
