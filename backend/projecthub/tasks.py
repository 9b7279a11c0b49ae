"""Celery background tasks."""

import asyncio

import structlog

from projecthub.worker import celery_app

logger = structlog.get_logger()


def _notification_service(db):
    from projecthub.services.email import SMTPEmailSender
    from projecthub.services.notification import NotificationService
    from projecthub.services.realtime import LoggingPublisher

    # Workers hold no websocket connections
    return NotificationService(db, LoggingPublisher(), SMTPEmailSender())


@celery_app.task(bind=True, name="projecthub.tasks.scan_due_tasks")
def scan_due_tasks(self) -> dict:
    """
    Send due-soon and overdue reminders for open tasks.

    Scheduled by Celery Beat (see worker.py); safe to run repeatedly.
    """
    async def _process():
        from projecthub.db.session import session_scope
        from projecthub.services.due_dates import DueDateNotifier

        async with session_scope() as db:
            notifier = DueDateNotifier(db, _notification_service(db))
            return await notifier.process()

    try:
        counts = asyncio.run(_process())
        logger.info("due_task_scan_processed", **counts)
        return {"status": "success", **counts}
    except Exception as e:
        logger.error(
            "due_task_scan_failed",
            error=str(e),
        )
        return {
            "status": "error",
            "error": str(e),
        }
