import os
from celery import Celery
from celery.signals import worker_ready

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'mess_management.settings')

app = Celery('mess_management')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()


@worker_ready.connect
def schedule_startup_freeze(sender, **kwargs):
	"""Run one freeze sweep shortly after the worker comes up"""
	from django.conf import settings
	from apps.core.tasks import freeze_expired_meals

	delay = settings.MESS_CONFIG['freeze_startup_delay_seconds']
	freeze_expired_meals.apply_async(countdown=delay)
