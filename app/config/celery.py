"""
Celery configuration for the bookkeeping service.

Celery runs the ledger's background work:
- Balance and running-balance recalculation enqueued after ledger writes
- Scheduled jobs (recurring obligation generation, obligation audits,
  periodic full balance recalculation) driven by celery-beat

Redis is both the message broker and the result backend. Tasks are
auto-discovered from every installed Django app.

Usage:
    from bookkeeping.tasks import recalculate_running_balances

    recalculate_running_balances.delay(account.id)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up bookkeeping/tasks.py
app.autodiscover_tasks()
