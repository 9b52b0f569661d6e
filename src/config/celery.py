"""
Celery application for the marketplace order service.

``DJANGO_SETTINGS_MODULE`` is set before the app is created so Celery reads
the Django settings (``CELERY_`` prefix).  The outbox relay lives in
``modules.core.tasks``.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("marketplace")

# Django settings with the CELERY_ prefix
app.config_from_object("django.conf:settings", namespace="CELERY")

# tasks.py of every installed app
app.autodiscover_tasks()
