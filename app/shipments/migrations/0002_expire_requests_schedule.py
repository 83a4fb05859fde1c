"""
Add celery-beat schedule for expiring unanswered shipment requests.

expire_stale_pending_requests runs hourly and cancels pending requests
older than PENDING_REQUEST_TTL_HOURS with reason "expired".
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="hours",
    )

    PeriodicTask.objects.get_or_create(
        name="Expire Stale Pending Requests",
        defaults={
            "task": "shipments.tasks.expire_stale_pending_requests",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Cancels shipment requests the traveler never answered."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name="Expire Stale Pending Requests",
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("shipments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
