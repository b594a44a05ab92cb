from rest_framework import serializers
from apps.core.models import (
	MEAL_TYPE_CHOICES, MealSlot, MealConfirmation, MessMember, MessSubscription, Fine,
	GuestBooking, BookingAttendance, PaymentQRToken, ScanEvent,
)

class MealSlotSerializer(serializers.ModelSerializer):
	class Meta:
		model = MealSlot
		fields = ['meal_type', 'start_time', 'end_time', 'per_meal_cost',
				 'confirmation_deadline_hours', 'deadline_description', 'is_active', 'updated_at']

class MealSlotInputSerializer(serializers.Serializer):
	meal_type = serializers.ChoiceField(choices=MEAL_TYPE_CHOICES)
	start_time = serializers.TimeField()
	end_time = serializers.TimeField()
	per_meal_cost = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0)
	confirmation_deadline_hours = serializers.IntegerField(min_value=0)
	deadline_description = serializers.CharField(max_length=100, required=False, allow_blank=True)
	is_active = serializers.BooleanField(required=False)

class MealConfirmationSerializer(serializers.ModelSerializer):
	attended = serializers.BooleanField(read_only=True, allow_null=True)

	class Meta:
		model = MealConfirmation
		fields = ['id', 'user', 'meal_date', 'meal_type', 'notes', 'confirmed_at', 'meal_cost',
				 'attendance_status', 'attended', 'attended_at', 'attendance_method', 'is_walk_in',
				 'fine_applied', 'is_frozen', 'frozen_at', 'freeze_reason']

class ConfirmMealSerializer(serializers.Serializer):
	meal_date = serializers.DateField()
	meal_type = serializers.ChoiceField(choices=MEAL_TYPE_CHOICES)
	notes = serializers.CharField(required=False, allow_blank=True, max_length=500)

class DateRangeSerializer(serializers.Serializer):
	start_date = serializers.DateField()
	end_date = serializers.DateField()

class MealOnDateSerializer(serializers.Serializer):
	meal_date = serializers.DateField()
	meal_type = serializers.ChoiceField(choices=MEAL_TYPE_CHOICES)

class AttendanceSerializer(serializers.Serializer):
	attended = serializers.BooleanField()
	fine_amount = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
	notes = serializers.CharField(required=False, allow_blank=True, max_length=500)
	override = serializers.BooleanField(required=False, default=False)

	def validate(self, data):
		if data.get('fine_amount') and data['attended']:
			raise serializers.ValidationError('fine_amount is only allowed when marking a no-show')
		return data

class BulkConfirmSerializer(serializers.Serializer):
	user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
	meal_date = serializers.DateField()
	meal_type = serializers.ChoiceField(choices=MEAL_TYPE_CHOICES)

class WalkInSerializer(serializers.Serializer):
	user_id = serializers.IntegerField()
	meal_type = serializers.ChoiceField(choices=MEAL_TYPE_CHOICES)

class FreezeSerializer(serializers.Serializer):
	meal_type = serializers.ChoiceField(choices=MEAL_TYPE_CHOICES)
	meal_date = serializers.DateField()
	reason = serializers.CharField(required=False, allow_blank=True, max_length=100)

class ScanSerializer(serializers.Serializer):
	qr_data = serializers.CharField()
	qr_hash = serializers.CharField()
	device_info = serializers.CharField(required=False, allow_blank=True)

class ScanEventSerializer(serializers.ModelSerializer):
	scanner_name = serializers.CharField(source='scanner.username', read_only=True, default=None)

	class Meta:
		model = ScanEvent
		fields = ['id', 'kind', 'subject_id', 'meal_type', 'scanned_at', 'result',
				 'scanner_name', 'device_info']

class MessSubscriptionSerializer(serializers.ModelSerializer):
	class Meta:
		model = MessSubscription
		fields = ['id', 'user', 'subscription_type', 'meal_types', 'monthly_cost', 'start_date',
				 'end_date', 'status', 'payment_reference', 'renewed_at', 'created_at']

class SubscriptionCreateSerializer(serializers.Serializer):
	user_id = serializers.IntegerField(required=False)
	subscription_type = serializers.ChoiceField(choices=MessSubscription.TYPE_CHOICES, default='hostel_student')
	meal_types = serializers.ListField(child=serializers.ChoiceField(choices=MEAL_TYPE_CHOICES), allow_empty=False)
	start_date = serializers.DateField()
	end_date = serializers.DateField()
	monthly_cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
	payment_reference = serializers.CharField(required=False, allow_blank=True, max_length=100)

	def validate(self, data):
		if data['start_date'] > data['end_date']:
			raise serializers.ValidationError('start_date must not be after end_date')
		return data

class SubscriptionRenewSerializer(serializers.Serializer):
	end_date = serializers.DateField()
	payment_reference = serializers.CharField(required=False, allow_blank=True, max_length=100)

class SubscriptionStatusSerializer(serializers.Serializer):
	status = serializers.ChoiceField(choices=MessSubscription.STATUS_CHOICES)

class FineSerializer(serializers.ModelSerializer):
	class Meta:
		model = Fine
		fields = ['id', 'user', 'fine_type', 'amount', 'reason', 'related_confirmation', 'meal_date',
				 'meal_type', 'is_paid', 'payment_reference', 'paid_at', 'is_waived', 'waiver_reason',
				 'waived_at', 'created_at']

class PayFineSerializer(serializers.Serializer):
	payment_reference = serializers.CharField(max_length=100)

class WaiveFineSerializer(serializers.Serializer):
	reason = serializers.CharField(max_length=500)

class BookingAttendanceSerializer(serializers.ModelSerializer):
	class Meta:
		model = BookingAttendance
		fields = ['meal_type', 'attended', 'scanned_at']

class GuestBookingSerializer(serializers.ModelSerializer):
	attendance = BookingAttendanceSerializer(many=True, read_only=True)

	class Meta:
		model = GuestBooking
		fields = ['id', 'booked_by', 'booking_date', 'number_of_guests', 'meal_types',
				 'total_amount', 'payment_status', 'attendance', 'created_at']

class GuestBookingCreateSerializer(serializers.Serializer):
	booking_date = serializers.DateField()
	meal_types = serializers.ListField(child=serializers.ChoiceField(choices=MEAL_TYPE_CHOICES), allow_empty=False)
	number_of_guests = serializers.IntegerField(min_value=1, default=1)

class DateQuerySerializer(serializers.Serializer):
	date = serializers.DateField()

class BulkCancelSerializer(serializers.Serializer):
	confirmation_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
	reason = serializers.CharField(required=False, allow_blank=True, max_length=200)

class WeekStartSerializer(serializers.Serializer):
	week_start = serializers.DateField(required=False)

class ConfirmationsReportSerializer(serializers.Serializer):
	start_date = serializers.DateField()
	end_date = serializers.DateField()
	meal_type = serializers.ChoiceField(choices=MEAL_TYPE_CHOICES, required=False)
	role = serializers.ChoiceField(choices=MessMember.ROLE_CHOICES, required=False)

	def validate(self, data):
		if data['start_date'] > data['end_date']:
			raise serializers.ValidationError('start_date must not be after end_date')
		return data

class PaymentQRTokenSerializer(serializers.ModelSerializer):
	class Meta:
		model = PaymentQRToken
		fields = ['id', 'booking', 'amount', 'expires_at', 'is_used', 'payment_status',
				 'confirmed_by', 'confirmed_at', 'created_at']

class PaymentScanSerializer(serializers.Serializer):
	qr_data = serializers.CharField()
	qr_hash = serializers.CharField()
	payment_confirmed = serializers.BooleanField()
