"""Task assignment service for managing assignees and watchers."""

from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.exceptions import NotFoundError
from projecthub.models.enums import NotificationType
from projecthub.models.project import Project, TaskAssignee, TaskWatcher
from projecthub.models.user import User
from projecthub.services.access_control import get_accessible_task, get_membership
from projecthub.services.activity import log_activity
from projecthub.services.notification import NotificationEvent, NotificationService

logger = structlog.get_logger()


class TaskAssignmentService:
    """Service for managing task assignments (multiple assignees per task)."""

    def __init__(self, db: AsyncSession, notifications: NotificationService):
        self.db = db
        self.notifications = notifications

    # =========================================================================
    # Assignees
    # =========================================================================

    async def assign_user(
        self,
        task_id: UUID,
        user_id: UUID,
        actor_id: UUID,
    ) -> TaskAssignee:
        """Assign a workspace member to a task and notify them.

        Assigning an already-assigned user returns the existing row without
        sending anything.
        """
        task, project = await get_accessible_task(
            self.db, task_id, actor_id, required_role="member"
        )
        user = await self._get_workspace_user(project, user_id)

        existing = await self.get_assignment(task.id, user_id)
        if existing:
            logger.warning(
                "assignment_already_exists",
                task_id=str(task_id),
                user_id=str(user_id),
            )
            return existing

        assignment = TaskAssignee(
            task_id=task.id,
            user_id=user_id,
            assigned_by_id=actor_id,
        )
        self.db.add(assignment)
        log_activity(
            self.db,
            action="ASSIGNED",
            entity_id=task.id,
            actor_id=actor_id,
            task_id=task.id,
            project_id=project.id,
            field="assignee",
            new_value=user_id,
            description=user.display_name,
        )
        await self.db.commit()
        await self.db.refresh(assignment)

        logger.info(
            "user_assigned_to_task",
            task_id=str(task_id),
            user_id=str(user_id),
            assigned_by=str(actor_id),
        )

        actor_name = await self._display_name(actor_id)
        await self.notifications.notify(
            NotificationEvent(
                type=NotificationType.TASK_ASSIGNED,
                recipient_id=user_id,
                title=f"New task assigned: {task.title}",
                message=f"{actor_name} assigned you to '{task.title}'",
                actor_id=actor_id,
                project_id=project.id,
                task_id=task.id,
                metadata={
                    "task_title": task.title,
                    "project_name": project.name,
                    "actor_name": actor_name,
                },
            )
        )

        return assignment

    async def remove_assignment(
        self,
        task_id: UUID,
        user_id: UUID,
        actor_id: UUID,
    ) -> bool:
        """Remove a user's assignment from a task. Returns False if absent."""
        task, project = await get_accessible_task(
            self.db, task_id, actor_id, required_role="member"
        )
        assignment = await self.get_assignment(task.id, user_id)
        if assignment is None:
            return False

        await self.db.delete(assignment)
        log_activity(
            self.db,
            action="UNASSIGNED",
            entity_id=task.id,
            actor_id=actor_id,
            task_id=task.id,
            project_id=project.id,
            field="assignee",
            old_value=user_id,
        )
        await self.db.commit()

        logger.info(
            "assignment_removed",
            task_id=str(task_id),
            user_id=str(user_id),
        )
        return True

    async def get_assignment(self, task_id: UUID, user_id: UUID) -> TaskAssignee | None:
        result = await self.db.execute(
            select(TaskAssignee).where(
                TaskAssignee.task_id == task_id,
                TaskAssignee.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_task_assignees(self, task_id: UUID) -> Sequence[User]:
        """Get all users assigned to a task."""
        result = await self.db.execute(
            select(User)
            .join(TaskAssignee, TaskAssignee.user_id == User.id)
            .where(TaskAssignee.task_id == task_id)
            .order_by(TaskAssignee.created_at)
        )
        return result.scalars().all()

    # =========================================================================
    # Watchers
    # =========================================================================

    async def add_watcher(self, task_id: UUID, user_id: UUID) -> TaskWatcher:
        """Subscribe a user to a task's notifications (idempotent)."""
        task, _ = await get_accessible_task(self.db, task_id, user_id)

        result = await self.db.execute(
            select(TaskWatcher).where(
                TaskWatcher.task_id == task.id,
                TaskWatcher.user_id == user_id,
            )
        )
        existing = result.scalar_one_or_none()
        if existing:
            return existing

        watcher = TaskWatcher(task_id=task.id, user_id=user_id)
        self.db.add(watcher)
        await self.db.commit()
        await self.db.refresh(watcher)

        logger.info("task_watcher_added", task_id=str(task_id), user_id=str(user_id))
        return watcher

    async def remove_watcher(self, task_id: UUID, user_id: UUID) -> bool:
        """Unsubscribe a user from a task. Returns False if not watching."""
        task, _ = await get_accessible_task(self.db, task_id, user_id)

        result = await self.db.execute(
            select(TaskWatcher).where(
                TaskWatcher.task_id == task.id,
                TaskWatcher.user_id == user_id,
            )
        )
        watcher = result.scalar_one_or_none()
        if watcher is None:
            return False

        await self.db.delete(watcher)
        await self.db.commit()

        logger.info("task_watcher_removed", task_id=str(task_id), user_id=str(user_id))
        return True

    async def get_task_watchers(self, task_id: UUID) -> Sequence[User]:
        result = await self.db.execute(
            select(User)
            .join(TaskWatcher, TaskWatcher.user_id == User.id)
            .where(TaskWatcher.task_id == task_id)
            .order_by(TaskWatcher.created_at)
        )
        return result.scalars().all()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_workspace_user(self, project: Project, user_id: UUID) -> User:
        """Load a user who belongs to the project's organization."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None or await get_membership(self.db, project.organization_id, user_id) is None:
            raise NotFoundError("User", user_id)
        return user

    async def _display_name(self, user_id: UUID) -> str:
        result = await self.db.execute(select(User.display_name).where(User.id == user_id))
        return result.scalar_one_or_none() or "Someone"

