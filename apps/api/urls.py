# URLs for api app
from django.urls import path
from . import views

urlpatterns = [
	# Schedule
	path('schedule', views.meal_schedule, name='meal_schedule'),
	path('schedule/slots', views.create_meal_slot, name='create_meal_slot'),
	path('schedule/slots/<str:meal_type>', views.update_meal_slot, name='update_meal_slot'),
	path('schedule/deadline/<str:meal_type>', views.meal_deadline, name='meal_deadline'),
	path('schedule/prices', views.meal_prices, name='meal_prices'),

	# Confirmations
	path('confirmations', views.meal_confirmations, name='meal_confirmations'),
	path('confirmations/today', views.todays_meals, name='todays_meals'),
	path('confirmations/bulk', views.bulk_confirm, name='bulk_confirm'),
	path('confirmations/bulk-cancel', views.bulk_cancel, name='bulk_cancel'),
	path('confirmations/weekly', views.weekly_status, name='weekly_status'),
	path('confirmations/weekly-stats', views.weekly_stats, name='weekly_stats'),
	path('confirmations/walk-in', views.walk_in, name='walk_in'),
	path('confirmations/no-shows', views.no_shows, name='no_shows'),
	path('confirmations/<int:confirmation_id>', views.cancel_confirmation, name='cancel_confirmation'),
	path('confirmations/<int:confirmation_id>/attendance', views.record_attendance, name='record_attendance'),
	path('reports/daily', views.daily_report, name='daily_report'),
	path('reports/confirmations', views.confirmations_report, name='confirmations_report'),
	path('freeze', views.freeze_meal, name='freeze_meal'),

	# QR
	path('qr/profile', views.profile_qr, name='profile_qr'),
	path('qr/booking/<int:booking_id>', views.booking_qr, name='booking_qr'),
	path('qr/scan', views.scan_qr, name='scan_qr'),

	# Booking payments
	path('payments/booking/<int:booking_id>/qr', views.payment_qr, name='payment_qr'),
	path('payments/scan', views.scan_payment_qr, name='scan_payment_qr'),
	path('payments/pending', views.pending_payments, name='pending_payments'),
	path('payments/history', views.payment_history, name='payment_history'),
	path('payments/daily', views.daily_collection, name='daily_collection'),

	# Subscriptions
	path('subscriptions', views.create_subscription, name='create_subscription'),
	path('subscriptions/mine', views.my_subscriptions, name='my_subscriptions'),
	path('subscriptions/coverage', views.subscription_coverage, name='subscription_coverage'),
	path('subscriptions/<int:subscription_id>/renew', views.renew_subscription, name='renew_subscription'),
	path('subscriptions/<int:subscription_id>/status', views.subscription_status, name='subscription_status'),

	# Fines
	path('fines/mine', views.my_fines, name='my_fines'),
	path('fines/outstanding', views.outstanding_fines, name='outstanding_fines'),
	path('fines/<int:fine_id>/pay', views.pay_fine, name='pay_fine'),
	path('fines/<int:fine_id>/waive', views.waive_fine, name='waive_fine'),

	# Guest bookings
	path('bookings', views.create_guest_booking, name='create_guest_booking'),
	path('bookings/<int:booking_id>', views.guest_booking_detail, name='guest_booking_detail'),
]
