from celery import Celery
from medreminders.core.config import settings


celery_app = Celery(
    "medication_reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    task_default_queue=settings.CELERY_QUEUE,
    include=["medreminders.reminders.tasks"],
)

# Celery Beat schedule: progressively classify legacy reminders
celery_app.conf.beat_schedule = {
    "backfill-reminder-timing-policy": {
        "task": "reminders.backfill_timing_policy",
        "schedule": settings.BACKFILL_INTERVAL_SECONDS,
    },
}
