import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


MEAL_TYPE_CHOICES = [
    ('breakfast', 'Breakfast'),
    ('lunch', 'Lunch'),
    ('snacks', 'Snacks'),
    ('dinner', 'Dinner'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('actor_type', models.CharField(choices=[('MEMBER', 'Member'), ('STAFF', 'Staff'), ('SYSTEM', 'System')], max_length=10)),
                ('actor_id', models.CharField(blank=True, max_length=50, null=True)),
                ('event_type', models.CharField(max_length=50)),
                ('payload', models.JSONField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'audit_logs',
            },
        ),
        migrations.CreateModel(
            name='FineAssessmentRun',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('meal_type', models.CharField(choices=MEAL_TYPE_CHOICES, max_length=10)),
                ('run_date', models.DateField()),
                ('started_at', models.DateTimeField(auto_now_add=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
                ('assessed_count', models.PositiveIntegerField(default=0)),
                ('offense_count', models.PositiveIntegerField(default=0)),
                ('fines_created', models.PositiveIntegerField(default=0)),
            ],
            options={
                'db_table': 'fine_assessment_runs',
                'constraints': [models.UniqueConstraint(fields=('meal_type', 'run_date'), name='unique_fine_run_per_day')],
            },
        ),
        migrations.CreateModel(
            name='Settings',
            fields=[
                ('id', models.BooleanField(default=True, primary_key=True, serialize=False)),
                ('qr_secret_version', models.IntegerField(default=1)),
            ],
            options={
                'db_table': 'settings',
            },
        ),
        migrations.CreateModel(
            name='GuestBooking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('booking_date', models.DateField()),
                ('number_of_guests', models.PositiveSmallIntegerField(default=1)),
                ('meal_types', models.JSONField(default=list)),
                ('total_amount', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid'), ('cancelled', 'Cancelled')], default='pending', max_length=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('booked_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='guest_bookings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'guest_bookings',
            },
        ),
        migrations.CreateModel(
            name='BookingAttendance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('meal_type', models.CharField(choices=MEAL_TYPE_CHOICES, max_length=10)),
                ('attended', models.BooleanField(default=False)),
                ('scanned_at', models.DateTimeField(blank=True, null=True)),
                ('booking', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attendance', to='core.guestbooking')),
                ('scanner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'guest_booking_attendance',
                'constraints': [models.UniqueConstraint(fields=('booking', 'meal_type'), name='unique_booking_meal')],
            },
        ),
        migrations.CreateModel(
            name='MealConfirmation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('meal_date', models.DateField()),
                ('meal_type', models.CharField(choices=MEAL_TYPE_CHOICES, max_length=10)),
                ('notes', models.TextField(blank=True)),
                ('confirmed_at', models.DateTimeField(auto_now_add=True)),
                ('meal_cost', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('attendance_status', models.CharField(choices=[('PENDING', 'Pending'), ('ATTENDED', 'Attended'), ('NO_SHOW', 'No Show')], default='PENDING', max_length=10)),
                ('attended_at', models.DateTimeField(blank=True, null=True)),
                ('attendance_method', models.CharField(blank=True, choices=[('qr_code', 'QR Code'), ('manual', 'Manual')], max_length=10)),
                ('is_walk_in', models.BooleanField(default=False)),
                ('fine_applied', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('is_frozen', models.BooleanField(default=False)),
                ('frozen_at', models.DateTimeField(blank=True, null=True)),
                ('freeze_reason', models.CharField(blank=True, max_length=100)),
                ('frozen_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('recorded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='meal_confirmations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'meal_confirmations',
                'indexes': [models.Index(fields=['meal_date', 'meal_type'], name='confirmation_date_meal_idx')],
                'constraints': [models.UniqueConstraint(fields=('user', 'meal_date', 'meal_type'), name='unique_meal_confirmation')],
            },
        ),
        migrations.CreateModel(
            name='Fine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('fine_type', models.CharField(choices=[('no_show', 'No Show'), ('late_cancellation', 'Late Cancellation'), ('multiple_offense', 'Multiple Offense'), ('subscription_violation', 'Subscription Violation')], max_length=25)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=8)),
                ('reason', models.CharField(max_length=255)),
                ('meal_date', models.DateField(blank=True, null=True)),
                ('meal_type', models.CharField(blank=True, choices=MEAL_TYPE_CHOICES, max_length=10)),
                ('is_paid', models.BooleanField(default=False)),
                ('payment_reference', models.CharField(blank=True, max_length=100)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('is_waived', models.BooleanField(default=False)),
                ('waiver_reason', models.TextField(blank=True)),
                ('waived_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('paid_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('related_confirmation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='fines', to='core.mealconfirmation')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='mess_fines', to=settings.AUTH_USER_MODEL)),
                ('waived_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'fines',
                'constraints': [models.CheckConstraint(condition=models.Q(('is_paid', True), ('is_waived', True), _negated=True), name='fine_not_paid_and_waived')],
            },
        ),
        migrations.CreateModel(
            name='MealSlot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('meal_type', models.CharField(choices=MEAL_TYPE_CHOICES, max_length=10, unique=True)),
                ('start_time', models.TimeField()),
                ('end_time', models.TimeField()),
                ('per_meal_cost', models.DecimalField(decimal_places=2, max_digits=8)),
                ('confirmation_deadline_hours', models.PositiveSmallIntegerField(default=0)),
                ('deadline_description', models.CharField(blank=True, max_length=100)),
                ('is_active', models.BooleanField(default=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'meal_slots',
                'constraints': [models.CheckConstraint(condition=models.Q(('start_time__lt', models.F('end_time'))), name='meal_slot_start_before_end')],
            },
        ),
        migrations.CreateModel(
            name='MessMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('student', 'Student'), ('employee', 'Employee'), ('mess_staff', 'Mess Staff'), ('hod', 'HOD'), ('admin', 'Admin')], default='student', max_length=15)),
                ('member_code', models.CharField(blank=True, max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('offense_count', models.PositiveIntegerField(default=0)),
                ('offense_month', models.CharField(blank=True, max_length=7)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='mess_member', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'mess_members',
            },
        ),
        migrations.CreateModel(
            name='MessSubscription',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('subscription_type', models.CharField(choices=[('hostel_student', 'Hostel Student'), ('employee_monthly', 'Employee Monthly')], default='hostel_student', max_length=20)),
                ('meal_types', models.JSONField(default=list)),
                ('monthly_cost', models.DecimalField(decimal_places=2, max_digits=10)),
                ('start_date', models.DateField()),
                ('end_date', models.DateField()),
                ('status', models.CharField(choices=[('active', 'Active'), ('expired', 'Expired'), ('suspended', 'Suspended')], default='active', max_length=10)),
                ('payment_reference', models.CharField(blank=True, max_length=100)),
                ('renewed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='mess_subscriptions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'mess_subscriptions',
                'constraints': [models.UniqueConstraint(condition=models.Q(('status', 'active')), fields=('user',), name='one_active_subscription_per_user')],
            },
        ),
        migrations.CreateModel(
            name='StaffToken',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('label', models.CharField(max_length=100)),
                ('issued_at', models.DateTimeField(auto_now_add=True)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('active', models.BooleanField(default=True)),
                ('token_hash', models.CharField(max_length=64, unique=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='staff_tokens', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'staff_tokens',
            },
        ),
        migrations.CreateModel(
            name='ScanEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(blank=True, choices=[('profile', 'Profile'), ('booking', 'Booking')], max_length=10)),
                ('subject_id', models.BigIntegerField(blank=True, null=True)),
                ('meal_type', models.CharField(blank=True, choices=MEAL_TYPE_CHOICES, max_length=10)),
                ('scanned_at', models.DateTimeField(auto_now_add=True)),
                ('result', models.CharField(choices=[('ALLOWED', 'Allowed'), ('WALK_IN', 'Walk-in'), ('BLOCKED_QR_INVALID', 'Blocked - Invalid QR'), ('BLOCKED_NOT_FOUND', 'Blocked - Not Found'), ('BLOCKED_NO_MEAL_WINDOW', 'Blocked - No Meal Window'), ('BLOCKED_NO_SUBSCRIPTION', 'Blocked - No Subscription'), ('BLOCKED_NOT_BOOKED', 'Blocked - Meal Not Booked'), ('BLOCKED_DUPLICATE', 'Blocked - Already Attended')], max_length=25)),
                ('device_info', models.TextField(blank=True)),
                ('scanner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('staff_token', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to='core.stafftoken')),
            ],
            options={
                'db_table': 'scan_events',
            },
        ),
    ]
