# Views for api app

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404

from apps.core.clock import default_clock
from apps.core.exceptions import Forbidden, ValidationFailed
from apps.core.models import GuestBooking
from apps.core.services import (
    attendance, bookings, confirmations, fines, freeze, payments, schedule, subscriptions,
)
from apps.core.services.members import is_staff_member
from apps.utils.qr_utils import generate_qr_image
from .serializers import (
    AttendanceSerializer, BulkCancelSerializer, BulkConfirmSerializer, ConfirmMealSerializer,
    ConfirmationsReportSerializer, DateQuerySerializer, DateRangeSerializer, FineSerializer,
    FreezeSerializer, GuestBookingCreateSerializer, GuestBookingSerializer, MealConfirmationSerializer,
    MealOnDateSerializer, MealSlotInputSerializer, MealSlotSerializer, MessSubscriptionSerializer,
    PayFineSerializer, PaymentQRTokenSerializer, PaymentScanSerializer, ScanEventSerializer,
    ScanSerializer, SubscriptionCreateSerializer, SubscriptionRenewSerializer,
    SubscriptionStatusSerializer, WaiveFineSerializer, WalkInSerializer, WeekStartSerializer,
)
from .permissions import IsAdminOrHod, IsMessStaff, IsStaffMember


def _validated(serializer_class, data, **kwargs):
    serializer = serializer_class(data=data, **kwargs)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


def _slot_or_none(slot):
    return MealSlotSerializer(slot).data if slot else None


# Schedule

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def meal_schedule(request):
    """Active meal slots and what is being served right now"""
    slots = sorted(schedule.get_active_slots(), key=lambda s: s.start_time)
    window = schedule.resolve_current_or_upcoming(slots=slots)

    return Response({
        'slots': MealSlotSerializer(slots, many=True).data,
        'current': {
            'active': _slot_or_none(window.active),
            'active_slots': [slot.meal_type for slot in window.active_slots],
            'upcoming': _slot_or_none(window.upcoming),
            'last_finished': _slot_or_none(window.last_finished),
        },
        'server_time': default_clock.now(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def meal_deadline(request, meal_type):
    """Confirmation deadline for a meal on a date (default today)"""
    target_date = default_clock.today()
    if 'date' in request.query_params:
        target_date = _validated(MealOnDateSerializer, {
            'meal_date': request.query_params['date'],
            'meal_type': meal_type,
        })['meal_date']

    deadline = schedule.compute_deadline(meal_type, target_date)
    return Response({
        'meal_type': meal_type,
        'meal_date': target_date,
        'can_confirm': deadline.can_confirm,
        'deadline': deadline.deadline,
        'meal_start': deadline.meal_start,
        'hours_before_meal': deadline.hours_before_meal,
    })


@api_view(['GET'])
@permission_classes([AllowAny])
def meal_prices(request):
    """Per-meal, guest and monthly prices"""
    return Response({'prices': schedule.meal_prices()})


@api_view(['POST'])
@permission_classes([IsAdminOrHod])
def create_meal_slot(request):
    data = _validated(MealSlotInputSerializer, request.data)
    data.pop('is_active', None)
    slot = schedule.create_slot(updated_by=request.user, **data)
    return Response(MealSlotSerializer(slot).data, status=status.HTTP_201_CREATED)


@api_view(['PATCH'])
@permission_classes([IsAdminOrHod])
def update_meal_slot(request, meal_type):
    data = _validated(MealSlotInputSerializer, request.data, partial=True)
    data.pop('meal_type', None)
    if not data:
        raise ValidationFailed('No fields to update')
    slot = schedule.update_slot(meal_type, updated_by=request.user, **data)
    return Response(MealSlotSerializer(slot).data)


# Confirmations

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def meal_confirmations(request):
    """List own confirmations in a date range, or confirm a meal"""
    if request.method == 'GET':
        params = _validated(DateRangeSerializer, request.query_params)
        records = confirmations.user_confirmations(request.user, params['start_date'], params['end_date'])
        return Response(MealConfirmationSerializer(records, many=True).data)

    data = _validated(ConfirmMealSerializer, request.data)
    confirmation = confirmations.create_confirmation(
        request.user, data['meal_date'], data['meal_type'], notes=data.get('notes', '')
    )
    return Response(MealConfirmationSerializer(confirmation).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def todays_meals(request):
    meals = confirmations.todays_meals(request.user)
    return Response({
        'date': default_clock.today(),
        'meals': [
            {
                'slot': MealSlotSerializer(meal['slot']).data,
                'confirmation': MealConfirmationSerializer(meal['confirmation']).data if meal['confirmation'] else None,
                'can_confirm': meal['can_confirm'],
                'deadline_passed': meal['deadline_passed'],
                'deadline': meal['deadline'],
            }
            for meal in meals
        ],
    })


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def cancel_confirmation(request, confirmation_id):
    result = confirmations.cancel_confirmation(confirmation_id, request.user)
    return Response({
        'status': result.status,
        'message': result.message,
        'fine': FineSerializer(result.fine).data if result.fine else None,
    })


@api_view(['POST'])
@permission_classes([IsStaffMember])
def record_attendance(request, confirmation_id):
    """Manual attendance marking, optionally with a no-show penalty"""
    data = _validated(AttendanceSerializer, request.data)
    confirmation = confirmations.record_attendance(
        confirmation_id,
        data['attended'],
        request.user,
        'manual',
        fine_amount=data.get('fine_amount'),
        notes=data.get('notes', ''),
        override=data['override'],
    )
    return Response(MealConfirmationSerializer(confirmation).data)


@api_view(['POST'])
@permission_classes([IsStaffMember])
def bulk_confirm(request):
    data = _validated(BulkConfirmSerializer, request.data)
    users = get_user_model().objects.in_bulk(data['user_ids'])

    missing = [user_id for user_id in data['user_ids'] if user_id not in users]
    entries = [
        {'user': users[user_id], 'meal_date': data['meal_date'], 'meal_type': data['meal_type']}
        for user_id in data['user_ids'] if user_id in users
    ]

    results = confirmations.bulk_confirm(entries)
    results['failed'] += len(missing)
    results['errors'].extend({'user_id': user_id, 'error': 'User not found'} for user_id in missing)
    return Response(results)


@api_view(['POST'])
@permission_classes([IsStaffMember])
def walk_in(request):
    """Record a walk-in for today, billed per meal when not covered"""
    data = _validated(WalkInSerializer, request.data)
    user = get_object_or_404(get_user_model(), pk=data['user_id'])
    confirmation = confirmations.record_walk_in(user, data['meal_type'], request.user)
    return Response(MealConfirmationSerializer(confirmation).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsStaffMember])
def no_shows(request):
    params = _validated(MealOnDateSerializer, request.query_params)
    records = confirmations.no_shows(params['meal_date'], params['meal_type'])
    return Response([
        {
            'confirmation': MealConfirmationSerializer(record).data,
            'username': record.user.get_username(),
        }
        for record in records
    ])


@api_view(['GET'])
@permission_classes([IsStaffMember])
def daily_report(request):
    report_date = default_clock.today()
    if 'date' in request.query_params:
        report_date = _validated(DateQuerySerializer, request.query_params)['date']

    return Response({
        'date': report_date,
        'meals': confirmations.daily_report(report_date),
    })


@api_view(['POST'])
@permission_classes([IsStaffMember])
def freeze_meal(request):
    """Freeze a meal early, e.g. for an unplanned closure"""
    data = _validated(FreezeSerializer, request.data)
    frozen = freeze.manual_freeze(
        data['meal_type'],
        data['meal_date'],
        reason=data.get('reason') or 'manual_freeze',
        frozen_by=request.user,
    )
    return Response({'frozen': frozen})


@api_view(['POST'])
@permission_classes([IsStaffMember])
def bulk_cancel(request):
    data = _validated(BulkCancelSerializer, request.data)
    results = confirmations.bulk_cancel(data['confirmation_ids'], request.user, reason=data.get('reason', ''))
    return Response(results)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def weekly_status(request):
    """Confirmed and frozen meals for the coming week"""
    week = confirmations.weekly_status(request.user)
    return Response({'week': week})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def weekly_stats(request):
    params = _validated(WeekStartSerializer, request.query_params)
    return Response(confirmations.weekly_stats(request.user, week_start=params.get('week_start')))


@api_view(['GET'])
@permission_classes([IsStaffMember])
def confirmations_report(request):
    params = _validated(ConfirmationsReportSerializer, request.query_params)
    report = confirmations.confirmations_report(
        params['start_date'],
        params['end_date'],
        meal_type=params.get('meal_type'),
        role=params.get('role'),
    )
    return Response(report)


# QR

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile_qr(request):
    """Rotating attendance QR for the current user"""
    payload = attendance.profile_qr(request.user)
    return Response({
        'qr': payload,
        'image': generate_qr_image(payload),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def booking_qr(request, booking_id):
    booking = get_object_or_404(GuestBooking, pk=booking_id)
    if booking.booked_by_id != request.user.pk and not is_staff_member(request.user):
        raise Forbidden('Only the booking owner or mess staff can view this QR')

    payload = attendance.booking_qr(booking)
    return Response({
        'qr': payload,
        'image': generate_qr_image(payload),
    })


@api_view(['POST'])
@permission_classes([IsMessStaff])
def scan_qr(request):
    """Handle QR code scanning"""
    data = _validated(ScanSerializer, request.data)
    result = attendance.scan(
        data['qr_data'],
        data['qr_hash'],
        request.user,
        device_info=data.get('device_info', ''),
        staff_token=request.auth if getattr(request.auth, 'token_hash', None) else None,
    )

    response = {
        'status': result.status,
        'message': result.message,
        'meal_type': result.meal_type,
        'was_confirmed': result.was_confirmed,
        'scan_event': ScanEventSerializer(result.scan_event).data,
    }
    if result.confirmation is not None:
        response['confirmation'] = MealConfirmationSerializer(result.confirmation).data
    if result.booking is not None:
        response['booking'] = GuestBookingSerializer(result.booking).data
    return Response(response)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def payment_qr(request, booking_id):
    """Single-use QR for paying a guest booking at the counter"""
    booking = get_object_or_404(GuestBooking, pk=booking_id)
    token, payload = payments.generate_payment_qr(booking, request.user)
    return Response({
        'payment': PaymentQRTokenSerializer(token).data,
        'qr': payload,
        'image': generate_qr_image(payload),
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsMessStaff])
def scan_payment_qr(request):
    data = _validated(PaymentScanSerializer, request.data)
    token = payments.process_payment_scan(
        data['qr_data'], data['qr_hash'], request.user, data['payment_confirmed']
    )
    return Response(PaymentQRTokenSerializer(token).data)


@api_view(['GET'])
@permission_classes([IsMessStaff])
def pending_payments(request):
    return Response(PaymentQRTokenSerializer(payments.pending_payments(), many=True).data)


@api_view(['GET'])
@permission_classes([IsMessStaff])
def payment_history(request):
    return Response(PaymentQRTokenSerializer(payments.payment_history(request.user), many=True).data)


@api_view(['GET'])
@permission_classes([IsStaffMember])
def daily_collection(request):
    collection_date = default_clock.today()
    if 'date' in request.query_params:
        collection_date = _validated(DateQuerySerializer, request.query_params)['date']
    return Response({
        'date': collection_date,
        'collection': payments.daily_collection(collection_date),
    })


# Subscriptions

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_subscription(request):
    data = _validated(SubscriptionCreateSerializer, request.data)

    user = request.user
    if data.get('user_id') and data['user_id'] != request.user.pk:
        if not is_staff_member(request.user):
            raise Forbidden('Only mess staff can create subscriptions for other users')
        user = get_object_or_404(get_user_model(), pk=data['user_id'])

    subscription = subscriptions.create_subscription(
        user,
        data['meal_types'],
        data['start_date'],
        data['end_date'],
        subscription_type=data['subscription_type'],
        monthly_cost=data.get('monthly_cost'),
        payment_reference=data.get('payment_reference', ''),
    )
    return Response(MessSubscriptionSerializer(subscription).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_subscriptions(request):
    include_expired = request.query_params.get('include_expired', '').lower() == 'true'
    records = subscriptions.user_subscriptions(request.user, include_expired=include_expired)
    return Response(MessSubscriptionSerializer(records, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def subscription_coverage(request):
    params = _validated(MealOnDateSerializer, request.query_params)
    coverage = subscriptions.check_coverage(request.user, params['meal_type'], params['meal_date'])
    return Response({
        'covered': coverage.covered,
        'message': coverage.message,
        'subscription': MessSubscriptionSerializer(coverage.subscription).data if coverage.subscription else None,
    })


@api_view(['POST'])
@permission_classes([IsStaffMember])
def renew_subscription(request, subscription_id):
    data = _validated(SubscriptionRenewSerializer, request.data)
    subscription = subscriptions.renew_subscription(
        subscription_id, data['end_date'], payment_reference=data.get('payment_reference', '')
    )
    return Response(MessSubscriptionSerializer(subscription).data)


@api_view(['PATCH'])
@permission_classes([IsStaffMember])
def subscription_status(request, subscription_id):
    data = _validated(SubscriptionStatusSerializer, request.data)
    subscription = subscriptions.update_status(subscription_id, data['status'])
    return Response(MessSubscriptionSerializer(subscription).data)


# Fines

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_fines(request):
    records = fines.user_fines(request.user, status=request.query_params.get('status'))
    return Response(FineSerializer(records, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def outstanding_fines(request):
    return Response(fines.outstanding_total(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def pay_fine(request, fine_id):
    data = _validated(PayFineSerializer, request.data)
    fine = fines.get_fine(fine_id)
    if fine.user_id != request.user.pk and not is_staff_member(request.user):
        raise Forbidden('Only the fined user or mess staff can record a payment')

    fine = fines.pay_fine(fine_id, data['payment_reference'], paid_by=request.user)
    return Response(FineSerializer(fine).data)


@api_view(['POST'])
@permission_classes([IsAdminOrHod])
def waive_fine(request, fine_id):
    data = _validated(WaiveFineSerializer, request.data)
    fine = fines.waive_fine(fine_id, request.user, data['reason'])
    return Response(FineSerializer(fine).data)


# Guest bookings

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_guest_booking(request):
    data = _validated(GuestBookingCreateSerializer, request.data)
    booking = bookings.create_guest_booking(
        request.user,
        data['booking_date'],
        data['meal_types'],
        number_of_guests=data['number_of_guests'],
    )
    return Response(GuestBookingSerializer(booking).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def guest_booking_detail(request, booking_id):
    booking = get_object_or_404(GuestBooking, pk=booking_id)
    if booking.booked_by_id != request.user.pk and not is_staff_member(request.user):
        raise Forbidden('Only the booking owner or mess staff can view this booking')
    return Response(GuestBookingSerializer(booking).data)
