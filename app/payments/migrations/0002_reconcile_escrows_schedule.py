"""
Add celery-beat schedule for reconciling escrows with unknown outcomes.

A Stripe call whose outcome was never recorded (worker crash, timeout) leaves
its EscrowTransaction in an intermediate status. The reconcile_pending_escrows
task runs every 15 minutes and queues one reconciliation per stale row.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for reconciling stuck escrows."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Create interval schedule: every 15 minutes
    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Reconcile Pending Escrows",
        defaults={
            "task": "payments.tasks.reconcile_pending_escrows",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Settles escrows left pending, authorized, releasing or "
                "refunding by an unknown Stripe outcome."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name="Reconcile Pending Escrows",
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
