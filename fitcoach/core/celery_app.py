"""Celery application configuration for background tasks and scheduled jobs.

Usage:
    # Start worker with beat scheduler (for development):
    celery -A fitcoach.core.celery_app worker -B -l info

    # Production (separate worker and beat):
    celery -A fitcoach.core.celery_app worker -l info
    celery -A fitcoach.core.celery_app beat -l info
"""
import os

from celery import Celery
from celery.schedules import crontab

# Load environment variables
from dotenv import load_dotenv

load_dotenv()

from fitcoach.config.settings import settings  # noqa: E402

# Create Celery app
celery_app = Celery(
    "fitcoach",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "fitcoach.tasks.sessions",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Crontab entries are interpreted in the trainers' operating zone
    timezone=settings.OPERATING_TIMEZONE,
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Reject task if worker dies
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,  # One task at a time per worker
    worker_max_tasks_per_child=100,  # Restart worker after 100 tasks

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Beat scheduler settings
    beat_scheduler="celery.beat:PersistentScheduler",
    beat_schedule_filename=os.getenv("CELERY_BEAT_SCHEDULE_FILE", "celerybeat-schedule"),
)

# Scheduled tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    # Session lifecycle sweep - daily just after local midnight
    "reconcile-session-statuses-daily": {
        "task": "fitcoach.tasks.sessions.reconcile_session_statuses",
        "schedule": crontab(
            minute=settings.SESSION_SWEEP_MINUTE,
            hour=settings.SESSION_SWEEP_HOUR,
        ),
    },
}
