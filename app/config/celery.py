"""
Celery configuration for the refund service.

Celery runs the background side of the refund flow:
- Queued webhook processing with bounded retries
- Refund status notification e-mails
- Periodic re-queueing of failed webhook events

Tasks are auto-discovered from all installed Django apps; the periodic
schedule lives in settings.CELERY_BEAT_SCHEDULE.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
