"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from pipevault.config import settings

# Create Celery app
celery_app = Celery(
    "pipevault",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "pipevault.tasks.notifications",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Beat schedule for periodic tasks
    beat_schedule={
        "process-notifications": {
            "task": "pipevault.tasks.notifications.process_notifications",
            # Approval and rejection emails go out within about a minute
            "schedule": crontab(minute="*"),
            "kwargs": {"limit": 50},
            "options": {"queue": "default"},
        },
    },
)
