from django.contrib import admin
from .models import (
	MessMember, MealSlot, MealConfirmation, MessSubscription, Fine, GuestBooking,
	BookingAttendance, PaymentQRToken, StaffToken, ScanEvent, FineAssessmentRun, AuditLog, Settings,
)


@admin.register(MessMember)
class MessMemberAdmin(admin.ModelAdmin):
	list_display = ['user', 'role', 'member_code', 'is_active', 'offense_count', 'offense_month']
	list_filter = ['role', 'is_active']
	search_fields = ['user__username', 'member_code']


@admin.register(MealSlot)
class MealSlotAdmin(admin.ModelAdmin):
	list_display = ['meal_type', 'start_time', 'end_time', 'per_meal_cost', 'confirmation_deadline_hours', 'is_active']
	readonly_fields = ['updated_at', 'updated_by']


@admin.register(MealConfirmation)
class MealConfirmationAdmin(admin.ModelAdmin):
	list_display = ['user', 'meal_date', 'meal_type', 'attendance_status', 'meal_cost', 'is_walk_in', 'is_frozen']
	list_filter = ['meal_type', 'attendance_status', 'is_walk_in', 'is_frozen']
	date_hierarchy = 'meal_date'
	search_fields = ['user__username']


@admin.register(MessSubscription)
class MessSubscriptionAdmin(admin.ModelAdmin):
	list_display = ['user', 'subscription_type', 'status', 'start_date', 'end_date', 'monthly_cost']
	list_filter = ['subscription_type', 'status']


@admin.register(Fine)
class FineAdmin(admin.ModelAdmin):
	list_display = ['user', 'fine_type', 'amount', 'meal_date', 'meal_type', 'is_paid', 'is_waived', 'created_at']
	list_filter = ['fine_type', 'is_paid', 'is_waived']


class BookingAttendanceInline(admin.TabularInline):
	model = BookingAttendance
	extra = 0


@admin.register(GuestBooking)
class GuestBookingAdmin(admin.ModelAdmin):
	list_display = ['id', 'booked_by', 'booking_date', 'number_of_guests', 'total_amount', 'payment_status']
	inlines = [BookingAttendanceInline]


@admin.register(PaymentQRToken)
class PaymentQRTokenAdmin(admin.ModelAdmin):
	list_display = ['booking', 'amount', 'payment_status', 'is_used', 'expires_at', 'confirmed_by']
	list_filter = ['payment_status', 'is_used']
	readonly_fields = ['qr_hash']


@admin.register(StaffToken)
class StaffTokenAdmin(admin.ModelAdmin):
	list_display = ['label', 'user', 'issued_at', 'expires_at', 'active']
	readonly_fields = ['token_hash']


@admin.register(ScanEvent)
class ScanEventAdmin(admin.ModelAdmin):
	list_display = ['kind', 'subject_id', 'meal_type', 'result', 'scanned_at', 'scanner']
	list_filter = ['kind', 'result', 'meal_type']


@admin.register(FineAssessmentRun)
class FineAssessmentRunAdmin(admin.ModelAdmin):
	list_display = ['meal_type', 'run_date', 'assessed_count', 'offense_count', 'fines_created', 'finished_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
	list_display = ['actor_type', 'actor_id', 'event_type', 'created_at']
	list_filter = ['actor_type', 'event_type']


admin.site.register(Settings)
