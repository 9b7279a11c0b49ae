"""Recipient computation for task-scoped notifications."""

from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.models.project import TaskAssignee, TaskWatcher


async def task_recipient_ids(
    db: AsyncSession,
    task_id: UUID,
    actor_id: UUID | None = None,
    exclude: Iterable[UUID] = (),
) -> list[UUID]:
    """Assignees and watchers of a task, minus the actor and ``exclude``.

    The result is sorted so fan-out order is deterministic.
    """
    assignees = await db.execute(
        select(TaskAssignee.user_id).where(TaskAssignee.task_id == task_id)
    )
    watchers = await db.execute(
        select(TaskWatcher.user_id).where(TaskWatcher.task_id == task_id)
    )

    recipients = set(assignees.scalars().all()) | set(watchers.scalars().all())
    if actor_id is not None:
        recipients.discard(actor_id)
    recipients.difference_update(exclude)

    return sorted(recipients, key=str)
