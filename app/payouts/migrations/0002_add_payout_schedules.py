"""
Add celery-beat schedules for payouts.

- Daily payout run: balances up to yesterday, every day at 10:00 UTC
- Failed webhook retry: every 5 minutes
"""

from django.db import migrations

DAILY_PAYOUTS_TASK_NAME = "Schedule Daily Payouts"
RETRY_WEBHOOKS_TASK_NAME = "Retry Failed Payout Webhooks"


def create_periodic_tasks(apps, schema_editor):
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    daily, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="10",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
        timezone="UTC",
    )
    PeriodicTask.objects.get_or_create(
        name=DAILY_PAYOUTS_TASK_NAME,
        defaults={
            "task": "payouts.tasks.schedule_daily_payouts",
            "crontab": daily,
            "enabled": True,
            "description": "Queues payouts of all unpaid balances up to yesterday, per processor.",
        },
    )

    every_five_minutes, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )
    PeriodicTask.objects.get_or_create(
        name=RETRY_WEBHOOKS_TASK_NAME,
        defaults={
            "task": "payouts.tasks.retry_failed_webhooks",
            "interval": every_five_minutes,
            "enabled": True,
            "description": "Re-queues failed Stripe events and PayPal IPNs with retries left.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[DAILY_PAYOUTS_TASK_NAME, RETRY_WEBHOOKS_TASK_NAME],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payouts", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
