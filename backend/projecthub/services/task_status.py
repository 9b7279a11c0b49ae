"""Task updates and the completion gate.

A task may only move to DONE when every upstream task dependency and every
direct subtask is DONE. The checks and the status write happen in one
transaction with the task row locked, so two concurrent completions cannot
both pass a stale gate.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.exceptions import BlockedByDependencyError, BlockedBySubtaskError, NotFoundError
from projecthub.models.enums import NotificationType, TaskPriority, TaskStatus
from projecthub.models.project import Project, Task
from projecthub.services.access_control import get_accessible_list, get_accessible_task
from projecthub.services.activity import log_activity
from projecthub.services.dependency import DependencyService
from projecthub.services.notification import NotificationService
from projecthub.services.realtime import RealtimePublisher
from projecthub.services.recipients import task_recipient_ids

logger = structlog.get_logger()

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "list_id",
        "position",
        "start_date",
        "due_date",
    }
)

# NOT NULL columns; a None here means "leave unchanged"
REQUIRED_FIELDS = frozenset({"title", "status", "priority", "position"})

# Fields whose changes are written to the activity log
TRACKED_FIELDS = {
    "status": "STATUS_CHANGED",
    "priority": "PRIORITY_CHANGED",
    "due_date": "DUE_DATE_CHANGED",
}


def _comparable(value: Any) -> Any:
    # SQLite hands back naive datetimes; compare everything as naive UTC
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def task_summary(task: Task) -> dict[str, Any]:
    """Serialize a task for real-time events and API responses."""
    return {
        "id": str(task.id),
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "project_id": str(task.project_id),
        "list_id": str(task.list_id) if task.list_id else None,
        "parent_id": str(task.parent_id) if task.parent_id else None,
        "position": task.position,
        "start_date": task.start_date.isoformat() if task.start_date else None,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
        "updated_by_id": str(task.updated_by_id) if task.updated_by_id else None,
    }


class TaskStatusService:
    """Service for task updates guarded by the completion gate."""

    def __init__(
        self,
        db: AsyncSession,
        notifications: NotificationService,
        realtime: RealtimePublisher,
    ):
        self.db = db
        self.notifications = notifications
        self.realtime = realtime
        self.dependencies = DependencyService(db)

    async def check_completion(self, task_id: UUID, lock: bool = False) -> None:
        """Raise if the task cannot be completed right now.

        Raises:
            BlockedByDependencyError: an upstream task is not DONE
            BlockedBySubtaskError: a direct subtask is not DONE
        """
        blocking = await self.dependencies.find_blocking_tasks(task_id, lock=lock)
        if blocking:
            raise BlockedByDependencyError(
                [{"id": str(t.id), "title": t.title, "status": t.status} for t in blocking]
            )

        query = (
            select(Task)
            .where(
                Task.parent_id == task_id,
                Task.status != TaskStatus.DONE.value,
            )
            .order_by(Task.position, Task.title)
        )
        if lock:
            query = query.with_for_update(read=True)
        result = await self.db.execute(query)
        subtasks = result.scalars().all()
        if subtasks:
            raise BlockedBySubtaskError(
                [{"id": str(t.id), "title": t.title, "status": t.status} for t in subtasks]
            )

    async def update_task(
        self,
        task_id: UUID,
        changes: dict[str, Any],
        actor_id: UUID,
    ) -> Task:
        """
        Apply a partial update to a task.

        ``changes`` may also carry ``completed_at`` as an explicit override.
        Moving into DONE runs the completion gate; a rejected update leaves
        the task untouched.
        """
        task, project = await get_accessible_task(
            self.db, task_id, actor_id, required_role="member", for_update=True
        )

        changes = dict(changes)
        has_override = "completed_at" in changes
        completed_override = changes.pop("completed_at", None)
        unknown = set(changes) - UPDATABLE_FIELDS
        for field in unknown:
            changes.pop(field)
        for field in REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                changes.pop(field)

        if changes.get("list_id") is not None:
            await self._ensure_same_project_list(task, changes["list_id"], actor_id)

        if changes.get("status") is not None:
            changes["status"] = TaskStatus(changes["status"]).value
        if changes.get("priority") is not None:
            changes["priority"] = TaskPriority(changes["priority"]).value

        old_status = task.status
        new_status = changes.get("status")
        old_values = {field: getattr(task, field) for field in TRACKED_FIELDS}

        if new_status == TaskStatus.DONE.value:
            await self.check_completion(task.id, lock=True)

        for field, value in changes.items():
            setattr(task, field, value)

        if new_status == TaskStatus.DONE.value and old_status != TaskStatus.DONE.value:
            task.completed_at = datetime.now(timezone.utc)
        elif has_override:
            task.completed_at = completed_override
        elif new_status is not None and old_status == TaskStatus.DONE.value and new_status != old_status:
            task.completed_at = None

        task.updated_by_id = actor_id

        changed_fields = []
        for field, action in TRACKED_FIELDS.items():
            if field not in changes:
                continue
            if _comparable(old_values[field]) == _comparable(changes[field]):
                continue
            changed_fields.append(field)
            log_activity(
                self.db,
                action=action,
                entity_id=task.id,
                actor_id=actor_id,
                task_id=task.id,
                project_id=task.project_id,
                field=field,
                old_value=old_values[field],
                new_value=changes[field],
            )

        await self.db.commit()
        await self.db.refresh(task)

        logger.info(
            "task_updated",
            task_id=str(task.id),
            user_id=str(actor_id),
            fields=sorted(changes),
            status=task.status,
        )

        await self._broadcast(project, "task:updated", task_summary(task))

        if "status" in changed_fields:
            await self._notify_status_change(task, project, old_status, actor_id)
            await self.db.refresh(task)

        return task

    async def attempt_status_transition(
        self,
        task_id: UUID,
        new_status: TaskStatus | str,
        actor_id: UUID,
        **kwargs: Any,
    ) -> Task:
        """Move a task to ``new_status``.

        Pass ``completed_at=...`` to override the completion timestamp.
        """
        changes: dict[str, Any] = {"status": TaskStatus(new_status).value}
        if "completed_at" in kwargs:
            changes["completed_at"] = kwargs["completed_at"]
        return await self.update_task(task_id, changes, actor_id)

    async def delete_task(self, task_id: UUID, actor_id: UUID) -> None:
        """Delete a task, its subtasks and every dependency edge touching them."""
        task, project = await get_accessible_task(
            self.db, task_id, actor_id, required_role="member", for_update=True
        )

        doomed = await self._collect_subtree(task.id)
        removed_edges = 0
        for doomed_id in doomed:
            removed_edges += await self.dependencies.delete_edges_for_task(doomed_id)

        # Children first so parent references never dangle mid-flush
        for doomed_id in reversed(doomed):
            result = await self.db.execute(select(Task).where(Task.id == doomed_id))
            doomed_task = result.scalar_one_or_none()
            if doomed_task is not None:
                await self.db.delete(doomed_task)
                await self.db.flush()

        log_activity(
            self.db,
            action="DELETED",
            entity_id=task.id,
            actor_id=actor_id,
            project_id=project.id,
            description=task.title,
        )
        await self.db.commit()

        logger.info(
            "task_deleted",
            task_id=str(task_id),
            user_id=str(actor_id),
            subtasks=len(doomed) - 1,
            edges_removed=removed_edges,
        )

        await self._broadcast(
            project, "task:deleted", {"id": str(task_id), "project_id": str(project.id)}
        )

    async def _collect_subtree(self, root_id: UUID) -> list[UUID]:
        """Return ``root_id`` followed by all its descendants, breadth first."""
        ordered = [root_id]
        seen = {root_id}
        frontier = [root_id]
        while frontier:
            result = await self.db.execute(
                select(Task.id).where(Task.parent_id.in_(frontier))
            )
            frontier = [i for i in result.scalars().all() if i not in seen]
            seen.update(frontier)
            ordered.extend(frontier)
        return ordered

    async def _ensure_same_project_list(self, task: Task, list_id: UUID, actor_id: UUID) -> None:
        """Tasks only move between lists of their own project."""
        task_list, _ = await get_accessible_list(self.db, list_id, actor_id)
        if task_list.project_id != task.project_id:
            raise NotFoundError("List", list_id)

    async def _broadcast(self, project: Project, event: str, payload: dict[str, Any]) -> None:
        try:
            await self.realtime.emit_to_workspace(str(project.organization_id), event, payload)
        except Exception:
            logger.warning("realtime_broadcast_failed", event=event, exc_info=True)

    async def _notify_status_change(
        self,
        task: Task,
        project: Project,
        old_status: str,
        actor_id: UUID,
    ) -> None:
        recipients = await task_recipient_ids(self.db, task.id, actor_id=actor_id)
        if not recipients:
            return
        await self.notifications.notify_many(
            recipients,
            NotificationType.TASK_STATUS_CHANGED,
            title=f"Task status changed: {task.title}",
            message=f"'{task.title}' moved from {old_status} to {task.status}",
            actor_id=actor_id,
            project_id=project.id,
            task_id=task.id,
            metadata={
                "task_title": task.title,
                "project_name": project.name,
                "old_status": old_status,
                "new_status": task.status,
            },
        )

