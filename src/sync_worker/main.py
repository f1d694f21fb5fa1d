"""Celery application for sync worker."""

from celery import Celery
from celery.schedules import crontab

from catalog_sync_service.config import get_settings

settings = get_settings()

# Create Celery app
app = Celery(
    "sync_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "sync_worker.tasks.reconcile",
        "sync_worker.tasks.maintenance",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes
    task_soft_time_limit=1740,  # 29 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="sync",
    task_routes={
        "sync_worker.tasks.*": {"queue": "sync"},
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Reconcile the supplier feed every few hours
    "reconcile-supplier-feed": {
        "task": "sync_worker.tasks.reconcile.reconcile_supplier_feed",
        "schedule": crontab(minute=0, hour=f"*/{settings.reconcile_interval_hours}"),
    },
    # Remove empty rings and expired events daily
    "cleanup-orphans": {
        "task": "sync_worker.tasks.maintenance.cleanup_orphans",
        "schedule": crontab(minute=0, hour=settings.cleanup_hour),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "sync"])


if __name__ == "__main__":
    run()
