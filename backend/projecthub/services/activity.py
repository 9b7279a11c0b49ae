"""Activity log helpers."""

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.models.activity import Activity


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def log_activity(
    db: AsyncSession,
    action: str,
    entity_id: UUID,
    actor_id: UUID | None,
    task_id: UUID | None = None,
    project_id: UUID | None = None,
    entity_type: str = "TASK",
    field: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
    description: str | None = None,
) -> Activity:
    """Stage an activity row in the current transaction (caller commits)."""
    activity = Activity(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        task_id=task_id,
        project_id=project_id,
        actor_id=actor_id,
        field=field,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
        description=description,
    )
    db.add(activity)
    return activity
