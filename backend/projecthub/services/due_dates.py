"""Due-date reminders for open tasks."""

from datetime import datetime, timedelta, timezone
from typing import NamedTuple
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.config import Settings, get_settings
from projecthub.models.activity import Notification
from projecthub.models.enums import NotificationType, TaskStatus
from projecthub.models.project import Project, Task
from projecthub.services.notification import NotificationEvent, NotificationService
from projecthub.services.recipients import task_recipient_ids

logger = structlog.get_logger()


class DueTask(NamedTuple):
    id: UUID
    title: str
    due_date: datetime | None
    project_id: UUID
    project_name: str


class DueDateNotifier:
    """Send TASK_DUE_SOON and TASK_OVERDUE notifications. Called by Celery.

    Each (task, recipient, type) is notified at most once, so the scan can
    run as often as needed.
    """

    def __init__(
        self,
        db: AsyncSession,
        notifications: NotificationService,
        settings: Settings | None = None,
    ):
        self.db = db
        self.notifications = notifications
        self.settings = settings or get_settings()

    async def process(self, now: datetime | None = None) -> dict[str, int]:
        now = now or datetime.now(timezone.utc)
        horizon = now + timedelta(hours=self.settings.task_due_soon_hours)

        open_tasks = (
            select(Task.id, Task.title, Task.due_date, Project.id, Project.name)
            .join(Project, Project.id == Task.project_id)
            .where(
                Task.status != TaskStatus.DONE.value,
                Task.is_archived.is_(False),
                Task.due_date.is_not(None),
            )
            .order_by(Task.due_date)
        )

        overdue = await self.db.execute(open_tasks.where(Task.due_date < now))
        due_soon = await self.db.execute(
            open_tasks.where(Task.due_date >= now, Task.due_date <= horizon)
        )

        counts = {"overdue": 0, "due_soon": 0}
        # Plain rows: a failed delivery rolls the session back
        for row in overdue.all():
            counts["overdue"] += await self._remind(DueTask(*row), NotificationType.TASK_OVERDUE)
        for row in due_soon.all():
            counts["due_soon"] += await self._remind(DueTask(*row), NotificationType.TASK_DUE_SOON)

        logger.info("due_date_scan_completed", **counts)
        return counts

    async def _remind(self, task: DueTask, notification_type: NotificationType) -> int:
        recipients = await task_recipient_ids(self.db, task.id)
        already_notified = await self._already_notified(task.id, notification_type)

        if notification_type == NotificationType.TASK_OVERDUE:
            title = f"Task overdue: {task.title}"
            message = f"'{task.title}' in {task.project_name} is past its due date"
        else:
            title = f"Task due soon: {task.title}"
            message = f"'{task.title}' in {task.project_name} is due soon"

        sent = 0
        for user_id in recipients:
            if user_id in already_notified:
                continue
            notification = await self.notifications.notify(
                NotificationEvent(
                    type=notification_type,
                    recipient_id=user_id,
                    title=title,
                    message=message,
                    project_id=task.project_id,
                    task_id=task.id,
                    metadata={
                        "task_title": task.title,
                        "project_name": task.project_name,
                        "due_date": task.due_date.isoformat() if task.due_date else None,
                    },
                )
            )
            if notification is not None:
                sent += 1
        return sent

    async def _already_notified(self, task_id: UUID, notification_type: NotificationType) -> set[UUID]:
        result = await self.db.execute(
            select(Notification.user_id).where(
                Notification.task_id == task_id,
                Notification.notification_type == notification_type.value,
            )
        )
        return set(result.scalars().all())
