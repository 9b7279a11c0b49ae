"""Workspace access control.

A user can reach a project (and everything inside it) when they belong to
the project's organization. Missing entities and inaccessible entities are
both reported as NotFoundError.
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.exceptions import NotFoundError
from projecthub.models.organization import OrganizationMember
from projecthub.models.project import Project, Task, TaskList

logger = structlog.get_logger()


# Role hierarchy for permission checking (higher = more permissions)
ROLE_HIERARCHY = {"admin": 3, "member": 2, "guest": 1}


def has_sufficient_role(user_role: str, required_role: str) -> bool:
    """Check whether a membership role satisfies the required role."""
    return ROLE_HIERARCHY.get(user_role, 0) >= ROLE_HIERARCHY.get(required_role, 0)


async def get_membership(
    db: AsyncSession,
    organization_id: UUID,
    user_id: UUID,
) -> OrganizationMember | None:
    """Get a user's membership in an organization."""
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def check_project_access(
    db: AsyncSession,
    project_id: UUID,
    user_id: UUID,
    required_role: str | None = None,
) -> Project:
    """Return the project if the user may access it, else raise NotFoundError."""
    result = await db.execute(select(Project).where(Project.id == project_id))
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project", project_id)

    membership = await get_membership(db, project.organization_id, user_id)
    if membership is None or (
        required_role is not None and not has_sufficient_role(membership.role, required_role)
    ):
        logger.info(
            "project_access_denied",
            project_id=str(project_id),
            user_id=str(user_id),
            required_role=required_role,
        )
        raise NotFoundError("Project", project_id)

    return project


async def get_accessible_task(
    db: AsyncSession,
    task_id: UUID,
    user_id: UUID,
    required_role: str | None = None,
    for_update: bool = False,
) -> tuple[Task, Project]:
    """Load a task and its project, enforcing access.

    With ``for_update`` the task row is locked for the rest of the
    transaction (ignored by SQLite).
    """
    query = select(Task).where(Task.id == task_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task", task_id)

    try:
        project = await check_project_access(db, task.project_id, user_id, required_role)
    except NotFoundError:
        raise NotFoundError("Task", task_id)

    return task, project


async def get_accessible_list(
    db: AsyncSession,
    list_id: UUID,
    user_id: UUID,
    required_role: str | None = None,
) -> tuple[TaskList, Project]:
    """Load a task list and its project, enforcing access."""
    result = await db.execute(select(TaskList).where(TaskList.id == list_id))
    task_list = result.scalar_one_or_none()
    if task_list is None:
        raise NotFoundError("List", list_id)

    try:
        project = await check_project_access(db, task_list.project_id, user_id, required_role)
    except NotFoundError:
        raise NotFoundError("List", list_id)

    return task_list, project
