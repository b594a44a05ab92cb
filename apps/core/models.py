from django.db import models
from django.db.models import Q, F
from django.conf import settings
from django.utils import timezone
import hashlib
import secrets

MEAL_TYPE_CHOICES = [
	('breakfast', 'Breakfast'),
	('lunch', 'Lunch'),
	('snacks', 'Snacks'),
	('dinner', 'Dinner'),
]

MEAL_TYPES = [choice[0] for choice in MEAL_TYPE_CHOICES]


class MessMember(models.Model):
	ROLE_CHOICES = [
		('student', 'Student'),
		('employee', 'Employee'),
		('mess_staff', 'Mess Staff'),
		('hod', 'HOD'),
		('admin', 'Admin'),
	]

	STAFF_ROLES = ('mess_staff', 'hod', 'admin')

	user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='mess_member')
	role = models.CharField(max_length=15, choices=ROLE_CHOICES, default='student')
	member_code = models.CharField(max_length=20, blank=True)
	is_active = models.BooleanField(default=True)
	# Monthly offense counter, reset when the month key changes
	offense_count = models.PositiveIntegerField(default=0)
	offense_month = models.CharField(max_length=7, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"{self.user.get_username()} ({self.role})"

	@property
	def is_staff_role(self):
		return self.role in self.STAFF_ROLES

	class Meta:
		db_table = 'mess_members'


class MealSlot(models.Model):
	meal_type = models.CharField(max_length=10, choices=MEAL_TYPE_CHOICES, unique=True)
	start_time = models.TimeField()
	end_time = models.TimeField()
	per_meal_cost = models.DecimalField(max_digits=8, decimal_places=2)
	confirmation_deadline_hours = models.PositiveSmallIntegerField(default=0)
	deadline_description = models.CharField(max_length=100, blank=True)
	is_active = models.BooleanField(default=True)
	updated_at = models.DateTimeField(auto_now=True)
	updated_by = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)

	def __str__(self):
		return f"{self.meal_type} {self.start_time:%H:%M}-{self.end_time:%H:%M}"

	def contains(self, time_of_day):
		return self.start_time <= time_of_day <= self.end_time

	class Meta:
		db_table = 'meal_slots'
		constraints = [
			models.CheckConstraint(condition=Q(start_time__lt=F('end_time')), name='meal_slot_start_before_end'),
		]


class MealConfirmation(models.Model):
	ATTENDANCE_CHOICES = [
		('PENDING', 'Pending'),
		('ATTENDED', 'Attended'),
		('NO_SHOW', 'No Show'),
	]

	METHOD_CHOICES = [
		('qr_code', 'QR Code'),
		('manual', 'Manual'),
	]

	user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='meal_confirmations')
	meal_date = models.DateField()
	meal_type = models.CharField(max_length=10, choices=MEAL_TYPE_CHOICES)
	notes = models.TextField(blank=True)
	confirmed_at = models.DateTimeField(auto_now_add=True)
	meal_cost = models.DecimalField(max_digits=8, decimal_places=2, default=0)
	attendance_status = models.CharField(max_length=10, choices=ATTENDANCE_CHOICES, default='PENDING')
	attended_at = models.DateTimeField(null=True, blank=True)
	attendance_method = models.CharField(max_length=10, choices=METHOD_CHOICES, blank=True)
	recorded_by = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)
	is_walk_in = models.BooleanField(default=False)
	fine_applied = models.DecimalField(max_digits=8, decimal_places=2, default=0)
	is_frozen = models.BooleanField(default=False)
	frozen_at = models.DateTimeField(null=True, blank=True)
	freeze_reason = models.CharField(max_length=100, blank=True)
	frozen_by = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)

	def __str__(self):
		return f"{self.user_id} - {self.meal_date} - {self.meal_type}"

	@property
	def attended(self):
		"""Tri-state view of attendance_status: None, True or False"""
		if self.attendance_status == 'ATTENDED':
			return True
		if self.attendance_status == 'NO_SHOW':
			return False
		return None

	class Meta:
		db_table = 'meal_confirmations'
		constraints = [
			models.UniqueConstraint(fields=['user', 'meal_date', 'meal_type'], name='unique_meal_confirmation'),
		]
		indexes = [
			models.Index(fields=['meal_date', 'meal_type'], name='confirmation_date_meal_idx'),
		]


class MessSubscription(models.Model):
	STATUS_CHOICES = [
		('active', 'Active'),
		('expired', 'Expired'),
		('suspended', 'Suspended'),
	]

	TYPE_CHOICES = [
		('hostel_student', 'Hostel Student'),
		('employee_monthly', 'Employee Monthly'),
	]

	user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='mess_subscriptions')
	subscription_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='hostel_student')
	meal_types = models.JSONField(default=list)
	monthly_cost = models.DecimalField(max_digits=10, decimal_places=2)
	start_date = models.DateField()
	end_date = models.DateField()
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active')
	payment_reference = models.CharField(max_length=100, blank=True)
	renewed_at = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.user_id} - {self.subscription_type} ({self.status})"

	def covers(self, meal_type, on_date):
		return (
			self.status == 'active'
			and self.start_date <= on_date <= self.end_date
			and meal_type in self.meal_types
		)

	class Meta:
		db_table = 'mess_subscriptions'
		constraints = [
			models.UniqueConstraint(
				fields=['user'], condition=Q(status='active'), name='one_active_subscription_per_user'
			),
		]


class Fine(models.Model):
	TYPE_CHOICES = [
		('no_show', 'No Show'),
		('late_cancellation', 'Late Cancellation'),
		('multiple_offense', 'Multiple Offense'),
		('subscription_violation', 'Subscription Violation'),
	]

	user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='mess_fines')
	fine_type = models.CharField(max_length=25, choices=TYPE_CHOICES)
	amount = models.DecimalField(max_digits=8, decimal_places=2)
	reason = models.CharField(max_length=255)
	related_confirmation = models.ForeignKey(
		MealConfirmation, on_delete=models.SET_NULL, null=True, blank=True, related_name='fines'
	)
	meal_date = models.DateField(null=True, blank=True)
	meal_type = models.CharField(max_length=10, choices=MEAL_TYPE_CHOICES, blank=True)
	is_paid = models.BooleanField(default=False)
	payment_reference = models.CharField(max_length=100, blank=True)
	paid_at = models.DateTimeField(null=True, blank=True)
	paid_by = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)
	is_waived = models.BooleanField(default=False)
	waived_by = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)
	waiver_reason = models.TextField(blank=True)
	waived_at = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.user_id} - {self.fine_type} - {self.amount}"

	class Meta:
		db_table = 'fines'
		constraints = [
			models.CheckConstraint(condition=~Q(is_paid=True, is_waived=True), name='fine_not_paid_and_waived'),
		]


class GuestBooking(models.Model):
	PAYMENT_STATUS_CHOICES = [
		('pending', 'Pending'),
		('paid', 'Paid'),
		('cancelled', 'Cancelled'),
	]

	booked_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='guest_bookings')
	booking_date = models.DateField()
	number_of_guests = models.PositiveSmallIntegerField(default=1)
	meal_types = models.JSONField(default=list)
	total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
	payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='pending')
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"Guest booking {self.pk} - {self.booking_date}"

	class Meta:
		db_table = 'guest_bookings'


class BookingAttendance(models.Model):
	booking = models.ForeignKey(GuestBooking, on_delete=models.CASCADE, related_name='attendance')
	meal_type = models.CharField(max_length=10, choices=MEAL_TYPE_CHOICES)
	attended = models.BooleanField(default=False)
	scanned_at = models.DateTimeField(null=True, blank=True)
	scanner = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)

	class Meta:
		db_table = 'guest_booking_attendance'
		constraints = [
			models.UniqueConstraint(fields=['booking', 'meal_type'], name='unique_booking_meal'),
		]


class PaymentQRToken(models.Model):
	"""Single-use signed QR that lets mess staff confirm a booking payment"""
	PAYMENT_STATUS_CHOICES = [
		('pending', 'Pending'),
		('confirmed', 'Confirmed'),
		('rejected', 'Rejected'),
	]

	booking = models.ForeignKey(GuestBooking, on_delete=models.CASCADE, related_name='payment_qrs')
	amount = models.DecimalField(max_digits=10, decimal_places=2)
	qr_hash = models.CharField(max_length=64, unique=True)
	expires_at = models.DateTimeField()
	is_used = models.BooleanField(default=False)
	payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='pending')
	confirmed_by = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)
	confirmed_at = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"Payment QR {self.pk} - booking {self.booking_id} - {self.payment_status}"

	class Meta:
		db_table = 'payment_qrs'


class StaffToken(models.Model):
	label = models.CharField(max_length=100)
	user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='staff_tokens')
	issued_at = models.DateTimeField(auto_now_add=True)
	expires_at = models.DateTimeField(null=True, blank=True)
	active = models.BooleanField(default=True)
	token_hash = models.CharField(max_length=64, unique=True)

	def __str__(self):
		return f"{self.label} - {'Active' if self.active else 'Inactive'}"

	@classmethod
	def create_token(cls, label, user, expires_days=30):
		token = secrets.token_urlsafe(32)
		token_hash = hashlib.sha256(token.encode()).hexdigest()

		expires_at = None
		if expires_days:
			expires_at = timezone.now() + timezone.timedelta(days=expires_days)

		staff_token = cls.objects.create(
			label=label,
			user=user,
			expires_at=expires_at,
			token_hash=token_hash
		)

		return staff_token, token

	class Meta:
		db_table = 'staff_tokens'


class ScanEvent(models.Model):
	KIND_CHOICES = [
		('profile', 'Profile'),
		('booking', 'Booking'),
	]

	RESULT_CHOICES = [
		('ALLOWED', 'Allowed'),
		('WALK_IN', 'Walk-in'),
		('BLOCKED_QR_INVALID', 'Blocked - Invalid QR'),
		('BLOCKED_NOT_FOUND', 'Blocked - Not Found'),
		('BLOCKED_NO_MEAL_WINDOW', 'Blocked - No Meal Window'),
		('BLOCKED_NO_SUBSCRIPTION', 'Blocked - No Subscription'),
		('BLOCKED_NOT_BOOKED', 'Blocked - Meal Not Booked'),
		('BLOCKED_DUPLICATE', 'Blocked - Already Attended'),
	]

	kind = models.CharField(max_length=10, choices=KIND_CHOICES, blank=True)
	subject_id = models.BigIntegerField(null=True, blank=True)
	meal_type = models.CharField(max_length=10, choices=MEAL_TYPE_CHOICES, blank=True)
	scanned_at = models.DateTimeField(auto_now_add=True)
	scanner = models.ForeignKey(
		settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
	)
	staff_token = models.ForeignKey(StaffToken, on_delete=models.SET_NULL, null=True, blank=True)
	result = models.CharField(max_length=25, choices=RESULT_CHOICES)
	device_info = models.TextField(blank=True)

	def __str__(self):
		return f"{self.kind}:{self.subject_id} - {self.meal_type} - {self.result}"

	class Meta:
		db_table = 'scan_events'


class FineAssessmentRun(models.Model):
	meal_type = models.CharField(max_length=10, choices=MEAL_TYPE_CHOICES)
	run_date = models.DateField()
	started_at = models.DateTimeField(auto_now_add=True)
	finished_at = models.DateTimeField(null=True, blank=True)
	assessed_count = models.PositiveIntegerField(default=0)
	offense_count = models.PositiveIntegerField(default=0)
	fines_created = models.PositiveIntegerField(default=0)

	def __str__(self):
		return f"Fine run {self.meal_type} {self.run_date}"

	class Meta:
		db_table = 'fine_assessment_runs'
		constraints = [
			models.UniqueConstraint(fields=['meal_type', 'run_date'], name='unique_fine_run_per_day'),
		]


class AuditLog(models.Model):
	ACTOR_TYPE_CHOICES = [
		('MEMBER', 'Member'),
		('STAFF', 'Staff'),
		('SYSTEM', 'System'),
	]

	actor_type = models.CharField(max_length=10, choices=ACTOR_TYPE_CHOICES)
	actor_id = models.CharField(max_length=50, null=True, blank=True)
	event_type = models.CharField(max_length=50)
	payload = models.JSONField()
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"{self.actor_type} - {self.event_type} - {self.created_at}"

	class Meta:
		db_table = 'audit_logs'


class Settings(models.Model):
	# Singleton pattern for global settings
	id = models.BooleanField(default=True, primary_key=True)
	qr_secret_version = models.IntegerField(default=1)

	def save(self, *args, **kwargs):
		self.id = True
		return super().save(*args, **kwargs)

	@classmethod
	def get_settings(cls):
		obj, created = cls.objects.get_or_create(id=True)
		return obj

	class Meta:
		db_table = 'settings'
