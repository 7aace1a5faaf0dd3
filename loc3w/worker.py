"""Celery worker configuration.

This module sets up Celery for background payment processing:
- Re-verifying pending charges
- Retrying refunds that failed after an owner rejection
- Expiring unpaid booking requests
"""

from celery import Celery
from celery.schedules import crontab

from loc3w.config import settings

# Create Celery app
celery_app = Celery(
    "loc3w_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["loc3w.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Africa/Porto-Novo",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Retry settings
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        # Re-verify charges whose callback never arrived
        "poll-pending-charges": {
            "task": "loc3w.tasks.poll_pending_charges",
            "schedule": crontab(minute="*/5"),
        },
        # Retry refunds flagged for review
        "retry-failed-refunds": {
            "task": "loc3w.tasks.retry_failed_refunds",
            "schedule": crontab(minute=15),
        },
        # Release dates held by unpaid requests
        "expire-unpaid-bookings": {
            "task": "loc3w.tasks.expire_unpaid_bookings",
            "schedule": crontab(minute="*/30"),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
