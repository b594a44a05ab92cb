"""
Booking payment QR codes.

A payment QR carries the booking and the amount due, is signed like the
attendance QR and can be scanned exactly once before it expires. Mess staff
scan it at the counter and either confirm or reject the payment.
"""

import logging
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Sum

from apps.utils import qr_utils
from apps.utils.decorators import storage_errors
from ..clock import default_clock
from ..exceptions import AlreadyPaid, Expired, Forbidden, InvalidSignature, NotFound, ValidationFailed
from ..models import AuditLog, GuestBooking, PaymentQRToken
from .members import is_staff_member

logger = logging.getLogger(__name__)


@storage_errors
def generate_payment_qr(booking, requested_by, clock=None):
    clock = clock or default_clock
    if booking.booked_by_id != requested_by.pk and not is_staff_member(requested_by):
        raise Forbidden('Only the booking owner or mess staff can request a payment QR')
    if booking.payment_status == 'paid':
        raise AlreadyPaid('Booking has already been paid')
    if booking.total_amount <= 0:
        raise ValidationFailed('Booking has nothing to pay')

    expires_at = clock.now() + timedelta(minutes=settings.MESS_CONFIG['payment_qr_expiry_minutes'])
    qr = qr_utils.generate_qr_payload(
        booking.pk,
        qr_utils.PAYMENT_KIND,
        expires_at=expires_at,
        extra={'amt': str(booking.total_amount), 'nonce': secrets.token_hex(8)},
        clock=clock,
    )

    token = PaymentQRToken.objects.create(
        booking=booking,
        amount=booking.total_amount,
        qr_hash=qr['hash'],
        expires_at=expires_at,
    )
    logger.info(f"Payment QR {token.pk} issued for booking {booking.pk} ({token.amount})")
    return token, qr


@storage_errors
def process_payment_scan(qr_data, qr_hash, scanner, payment_confirmed, clock=None):
    """Use a payment QR once, recording whether staff confirmed the payment"""
    clock = clock or default_clock
    payload = qr_utils.verify_qr_payload(qr_data, qr_hash, clock=clock)
    if payload['kind'] != qr_utils.PAYMENT_KIND:
        logger.warning(f"Payment scan rejected: QR kind {payload['kind']!r}")
        raise InvalidSignature()

    now = clock.now()
    status = 'confirmed' if payment_confirmed else 'rejected'

    with transaction.atomic():
        updated = PaymentQRToken.objects.filter(
            qr_hash=qr_hash,
            booking_id=int(payload['sub']),
            is_used=False,
            expires_at__gte=now,
        ).update(is_used=True, payment_status=status, confirmed_by=scanner, confirmed_at=now)

        if not updated:
            token = PaymentQRToken.objects.filter(qr_hash=qr_hash).first()
            if token is None:
                raise NotFound('Payment QR not found')
            if token.is_used:
                raise AlreadyPaid('Payment QR has already been used')
            raise Expired()

        token = PaymentQRToken.objects.select_related('booking').get(qr_hash=qr_hash)
        if payment_confirmed:
            GuestBooking.objects.filter(pk=token.booking_id).exclude(payment_status='paid').update(
                payment_status='paid'
            )

        AuditLog.objects.create(
            actor_type='STAFF',
            actor_id=str(scanner.pk) if scanner else None,
            event_type='PAYMENT_CONFIRMED' if payment_confirmed else 'PAYMENT_REJECTED',
            payload={'booking_id': token.booking_id, 'payment_qr_id': token.pk, 'amount': str(token.amount)},
        )

    logger.info(f"Payment QR {token.pk} for booking {token.booking_id} {status}")
    return token


@storage_errors
def pending_payments(clock=None):
    clock = clock or default_clock
    return list(
        PaymentQRToken.objects.filter(is_used=False, expires_at__gt=clock.now())
        .select_related('booking').order_by('expires_at')
    )


@storage_errors
def payment_history(staff_user, limit=50):
    return list(
        PaymentQRToken.objects.filter(confirmed_by=staff_user, is_used=True)
        .order_by('-confirmed_at')[:limit]
    )


@storage_errors
def daily_collection(on_date):
    """Used payment QRs on a date grouped by outcome"""
    rows = PaymentQRToken.objects.filter(
        is_used=True,
        confirmed_at__date=on_date,
    ).values('payment_status').annotate(
        count=Count('id'),
        total_amount=Sum('amount'),
    ).order_by('payment_status')

    return {
        row['payment_status']: {'count': row['count'], 'total_amount': row['total_amount'] or Decimal('0')}
        for row in rows
    }
