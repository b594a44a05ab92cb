"""
Domain failures for the meal confirmation and attendance core.

Every failure kind is an ``APIException`` so the REST layer maps it to a
status code through DRF's exception handler. The core raises these; views
let them propagate.
"""

from rest_framework import status
from rest_framework.exceptions import APIException


class MessError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Mess operation failed.'
    default_code = 'mess_error'


class NotFound(MessError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class AlreadyExists(MessError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Already exists.'
    default_code = 'already_exists'


class PastDate(MessError):
    default_detail = 'Date is in the past.'
    default_code = 'past_date'


class DeadlinePassed(MessError):
    default_detail = 'Confirmation deadline has passed.'
    default_code = 'deadline_passed'


class AlreadyAttended(MessError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Meal already attended.'
    default_code = 'already_attended'


class Forbidden(MessError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Insufficient permissions for this action.'
    default_code = 'forbidden'


class ConfirmationFrozen(MessError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Meal confirmation is frozen.'
    default_code = 'frozen'


class InvalidSignature(MessError):
    default_detail = 'Invalid or expired QR code.'
    default_code = 'invalid_qr'


class Expired(InvalidSignature):
    pass


class NoActiveMealWindow(MessError):
    default_detail = 'Current time is not within any meal service hours.'
    default_code = 'no_active_meal_window'


class NoActiveSubscription(MessError):
    default_detail = 'No active subscription for this meal.'
    default_code = 'no_active_subscription'


class MealNotBooked(MessError):
    default_detail = 'Meal is not part of this booking.'
    default_code = 'meal_not_booked'


class AlreadyPaid(MessError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Fine has already been paid.'
    default_code = 'already_paid'


class AlreadyWaived(MessError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Fine has already been waived.'
    default_code = 'already_waived'


class ValidationFailed(MessError):
    default_detail = 'Validation failed.'
    default_code = 'validation_failed'


class StorageError(MessError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Database operation failed.'
    default_code = 'storage_error'
