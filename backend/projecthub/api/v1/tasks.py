"""Tasks API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.api.deps import get_notification_service, get_realtime, handle_domain_error
from projecthub.api.v1.auth import CurrentUser
from projecthub.db.session import get_db_session
from projecthub.exceptions import NotFoundError, ProjectHubError
from projecthub.models.enums import TaskPriority, TaskStatus
from projecthub.models.project import Task
from projecthub.models.user import User
from projecthub.services.access_control import get_accessible_task
from projecthub.services.comments import CommentService
from projecthub.services.notification import NotificationService
from projecthub.services.realtime import RealtimePublisher
from projecthub.services.task_assignment import TaskAssignmentService
from projecthub.services.task_status import TaskStatusService

router = APIRouter()
logger = structlog.get_logger()


# =============================================================================
# Schemas
# =============================================================================


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only fields that are sent are applied."""

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    list_id: UUID | None = None
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    start_date: datetime | None = None
    due_date: datetime | None = None
    position: int | None = None
    completed_at: datetime | None = None

    @field_validator("title", "priority", "status", "position")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        # Omit the field to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("may not be null")
        return v


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    title: str
    description: str | None
    status: str
    priority: str
    project_id: UUID
    list_id: UUID | None
    parent_id: UUID | None
    position: int
    start_date: datetime | None
    due_date: datetime | None
    completed_at: datetime | None
    created_by_id: UUID | None
    updated_by_id: UUID | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CommentCreate(BaseModel):
    """Comment body. Mention users with ``@[Name](user-id)``."""

    content: str = Field(..., min_length=1, max_length=10000)
    parent_id: UUID | None = None


class CommentResponse(BaseModel):
    id: UUID
    task_id: UUID
    created_by_id: UUID
    parent_id: UUID | None
    content: str
    mentioned_user_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime


class AssigneeCreate(BaseModel):
    user_id: UUID


class TaskUserResponse(BaseModel):
    id: UUID
    email: str
    display_name: str

    class Config:
        from_attributes = True


# =============================================================================
# Task Endpoints
# =============================================================================


def _status_service(
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
    realtime: RealtimePublisher = Depends(get_realtime),
) -> TaskStatusService:
    return TaskStatusService(db, notifications, realtime)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Get a task."""
    try:
        task, _ = await get_accessible_task(db, task_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    updates: TaskUpdate,
    current_user: CurrentUser,
    service: TaskStatusService = Depends(_status_service),
) -> Task:
    """Update a task.

    Setting ``status`` to DONE is rejected with 400 while any upstream
    dependency or direct subtask is incomplete.
    """
    update_data = updates.model_dump(exclude_unset=True)
    try:
        return await service.update_task(task_id, update_data, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    current_user: CurrentUser,
    service: TaskStatusService = Depends(_status_service),
) -> None:
    """Delete a task with its subtasks and dependency edges."""
    try:
        await service.delete_task(task_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)


# =============================================================================
# Comments
# =============================================================================


@router.post(
    "/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    task_id: UUID,
    data: CommentCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
    realtime: RealtimePublisher = Depends(get_realtime),
) -> CommentResponse:
    """Add a comment to a task and notify mentioned users and followers."""
    service = CommentService(db, notifications, realtime)
    try:
        comment, mentioned_ids = await service.create_comment(
            task_id, data.content, current_user.id, parent_id=data.parent_id
        )
    except ProjectHubError as e:
        raise handle_domain_error(e)

    return CommentResponse(
        id=comment.id,
        task_id=comment.task_id,
        created_by_id=comment.created_by_id,
        parent_id=comment.parent_id,
        content=comment.content,
        mentioned_user_ids=mentioned_ids,
        created_at=comment.created_at,
    )


# =============================================================================
# Assignees and Watchers
# =============================================================================


@router.get("/{task_id}/assignees", response_model=list[TaskUserResponse])
async def list_assignees(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> list[User]:
    try:
        await get_accessible_task(db, task_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)
    return list(await TaskAssignmentService(db, notifications).get_task_assignees(task_id))


@router.post(
    "/{task_id}/assignees",
    response_model=list[TaskUserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def assign_user(
    task_id: UUID,
    data: AssigneeCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> list[User]:
    """Assign a user to a task. Returns the task's assignees."""
    service = TaskAssignmentService(db, notifications)
    try:
        await service.assign_user(task_id, data.user_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)
    return list(await service.get_task_assignees(task_id))


@router.delete("/{task_id}/assignees/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_assignee(
    task_id: UUID,
    user_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> None:
    service = TaskAssignmentService(db, notifications)
    try:
        removed = await service.remove_assignment(task_id, user_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)
    if not removed:
        raise handle_domain_error(NotFoundError("Assignment", user_id))


@router.get("/{task_id}/watchers", response_model=list[TaskUserResponse])
async def list_watchers(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> list[User]:
    try:
        await get_accessible_task(db, task_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)
    return list(await TaskAssignmentService(db, notifications).get_task_watchers(task_id))


@router.post("/{task_id}/watchers", status_code=status.HTTP_204_NO_CONTENT)
async def watch_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> None:
    """Start watching a task."""
    try:
        await TaskAssignmentService(db, notifications).add_watcher(task_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)


@router.delete("/{task_id}/watchers", status_code=status.HTTP_204_NO_CONTENT)
async def unwatch_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> None:
    """Stop watching a task."""
    try:
        await TaskAssignmentService(db, notifications).remove_watcher(task_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)

