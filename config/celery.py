import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("turfslot")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Fail stale checkouts and free their slots - every minute
    "expire-stale-reservations": {
        "task": "bookings.expire_stale_reservations",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Payout batches for venues whose period closed yesterday - daily at 02:00
    "generate-payout-batches": {
        "task": "finances.generate_payout_batches",
        "schedule": crontab(minute=0, hour=2),
    },
    # Reconciliation snapshots and drift alerts - daily at 03:00
    "check-reconciliation-drift": {
        "task": "finances.check_reconciliation_drift",
        "schedule": crontab(minute=0, hour=3),
    },
}

app.conf.timezone = "Asia/Kolkata"
