"""
Add Celery Beat schedules for bookkeeping jobs.

This migration creates periodic task schedules for:
- Daily generation of recurring payables and receivables
- Nightly audit of obligation paid amounts against their payments
- Weekly full recalculation of account balances
"""

from django.db import migrations

TASK_NAMES = [
    "Bookkeeping: Generate Payable Occurrences",
    "Bookkeeping: Generate Receivable Occurrences",
    "Bookkeeping: Audit Obligation Totals",
    "Bookkeeping: Recalculate All Balances",
]


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for bookkeeping."""
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Daily at 00:05 UTC
    crontab_daily, _ = CrontabSchedule.objects.get_or_create(
        minute="5",
        hour="0",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    # Daily at 3 AM UTC
    crontab_daily_3am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    # Weekly on Sunday at 4 AM UTC
    crontab_weekly_sun_4am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="4",
        day_of_week="0",  # Sunday
        day_of_month="*",
        month_of_year="*",
    )

    PeriodicTask.objects.get_or_create(
        name="Bookkeeping: Generate Payable Occurrences",
        defaults={
            "task": "bookkeeping.tasks.generate_payable_occurrences",
            "crontab": crontab_daily,
            "enabled": True,
            "description": (
                "Creates every payable due on or before today from recurring "
                "series and advances each series' next due date."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Bookkeeping: Generate Receivable Occurrences",
        defaults={
            "task": "bookkeeping.tasks.generate_receivable_occurrences",
            "crontab": crontab_daily,
            "enabled": True,
            "description": (
                "Creates every receivable due on or before today from recurring "
                "series and advances each series' next due date."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Bookkeeping: Audit Obligation Totals",
        defaults={
            "task": "bookkeeping.tasks.audit_obligation_totals",
            "crontab": crontab_daily_3am,
            "enabled": True,
            "description": (
                "Checks amount_paid against the sum of payments on every "
                "payable and receivable and repairs mismatches."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Bookkeeping: Recalculate All Balances",
        defaults={
            "task": "bookkeeping.tasks.recalculate_all_balances",
            "crontab": crontab_weekly_sun_4am,
            "enabled": True,
            "description": (
                "Weekly full recomputation of balances and running balances "
                "for every active account."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove all bookkeeping periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("bookkeeping", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
