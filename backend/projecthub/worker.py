"""Celery application for notification delivery and due-date scans."""

from celery import Celery

from projecthub.config import get_settings

settings = get_settings()

celery_app = Celery(
    "projecthub",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["projecthub.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    # One reserved task per worker process
    worker_prefetch_multiplier=1,
    result_expires=24 * 3600,
)

celery_app.conf.beat_schedule = {
    "scan-due-tasks": {
        "task": "projecthub.tasks.scan_due_tasks",
        "schedule": settings.due_date_scan_interval_minutes * 60.0,
    },
}
