"""Activity and notification API endpoints."""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.api.deps import handle_domain_error
from projecthub.api.v1.auth import CurrentUser
from projecthub.db.session import get_db_session
from projecthub.exceptions import ProjectHubError
from projecthub.models import Activity, Notification, NotificationPreference
from projecthub.services.access_control import get_accessible_task

router = APIRouter(tags=["activities"])


# --- Activity Schemas ---

class ActivityResponse(BaseModel):
    """Schema for activity response."""
    id: UUID
    action: str
    entity_type: str
    entity_id: UUID
    task_id: UUID | None
    project_id: UUID | None
    actor_id: UUID | None
    field: str | None
    old_value: str | None
    new_value: str | None
    description: str | None
    created_at: datetime

    class Config:
        from_attributes = True


# --- Notification Schemas ---

class NotificationResponse(BaseModel):
    """Schema for notification response."""
    id: UUID
    type: str
    title: str
    message: str
    link: str | None
    user_id: UUID
    actor_id: UUID | None
    actor_name: str | None = None
    project_id: UUID | None
    task_id: UUID | None
    milestone_id: UUID | None
    is_read: bool
    read_at: datetime | None
    metadata: dict | None
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Schema for paginated notification list."""
    notifications: list[NotificationResponse]
    unread_count: int
    total: int
    has_more: bool


class MarkNotificationsRequest(BaseModel):
    """Schema for marking notifications as read."""
    notification_ids: list[UUID] = Field(default_factory=list)
    mark_all: bool = False


class NotificationPreferenceResponse(BaseModel):
    """Schema for notification preferences."""
    task_assigned_in_app: bool
    task_assigned_email: bool
    task_status_in_app: bool
    task_status_email: bool
    task_comment_in_app: bool
    task_comment_email: bool
    task_due_in_app: bool
    task_due_email: bool
    project_member_in_app: bool
    project_member_email: bool
    project_role_in_app: bool
    project_role_email: bool
    milestone_in_app: bool
    milestone_email: bool
    invitation_in_app: bool
    invitation_email: bool

    class Config:
        from_attributes = True


class NotificationPreferenceUpdate(BaseModel):
    """Schema for updating notification preferences."""
    task_assigned_in_app: bool | None = None
    task_assigned_email: bool | None = None
    task_status_in_app: bool | None = None
    task_status_email: bool | None = None
    task_comment_in_app: bool | None = None
    task_comment_email: bool | None = None
    task_due_in_app: bool | None = None
    task_due_email: bool | None = None
    project_member_in_app: bool | None = None
    project_member_email: bool | None = None
    project_role_in_app: bool | None = None
    project_role_email: bool | None = None
    milestone_in_app: bool | None = None
    milestone_email: bool | None = None
    invitation_in_app: bool | None = None
    invitation_email: bool | None = None


# --- Activity Endpoints ---

@router.get("/tasks/{task_id}/activities", response_model=list[ActivityResponse])
async def get_task_activities(
    task_id: UUID,
    current_user: CurrentUser,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
):
    """Get the activity log of a task, newest first."""
    try:
        await get_accessible_task(db, task_id, current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)

    result = await db.execute(
        select(Activity)
        .where(Activity.task_id == task_id)
        .order_by(Activity.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


# --- Notification Endpoints ---

@router.get("/notifications", response_model=NotificationListResponse)
async def get_notifications(
    current_user: CurrentUser,
    is_read: bool | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
):
    """Get notifications for the current user."""
    query = select(Notification).where(Notification.user_id == current_user.id)

    if is_read is not None:
        query = query.where(Notification.is_read == is_read)

    # Count total and unread
    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query) or 0

    unread_query = select(func.count()).select_from(
        select(Notification)
        .where(Notification.user_id == current_user.id)
        .where(Notification.is_read.is_(False))
        .subquery()
    )
    unread_count = await db.scalar(unread_query) or 0

    # Fetch notifications
    query = (
        query
        .options(selectinload(Notification.actor))
        .order_by(Notification.created_at.desc())
        .offset(skip)
        .limit(limit + 1)
    )

    result = await db.execute(query)
    notifications = result.scalars().all()

    has_more = len(notifications) > limit
    notifications = notifications[:limit]

    notification_responses = [
        NotificationResponse(
            id=notif.id,
            type=notif.notification_type,
            title=notif.title,
            message=notif.message,
            link=notif.link,
            user_id=notif.user_id,
            actor_id=notif.actor_id,
            actor_name=notif.actor.display_name if notif.actor else None,
            project_id=notif.project_id,
            task_id=notif.task_id,
            milestone_id=notif.milestone_id,
            is_read=notif.is_read,
            read_at=notif.read_at,
            metadata=notif.extra_data,
            created_at=notif.created_at,
        )
        for notif in notifications
    ]

    return NotificationListResponse(
        notifications=notification_responses,
        unread_count=unread_count,
        total=total,
        has_more=has_more,
    )


@router.post("/notifications/mark-read")
async def mark_notifications_read(
    request: MarkNotificationsRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
):
    """Mark notifications as read."""
    now = datetime.now(timezone.utc)

    if request.mark_all:
        # Mark all unread notifications as read
        await db.execute(
            update(Notification)
            .where(Notification.user_id == current_user.id)
            .where(Notification.is_read.is_(False))
            .values(is_read=True, read_at=now)
        )
    elif request.notification_ids:
        # Mark specific notifications as read
        await db.execute(
            update(Notification)
            .where(Notification.user_id == current_user.id)
            .where(Notification.id.in_(request.notification_ids))
            .values(is_read=True, read_at=now)
        )

    await db.commit()

    return {"message": "Notifications marked as read"}


# --- Notification Preferences ---

async def _get_or_create_preferences(db: AsyncSession, user_id: UUID) -> NotificationPreference:
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    prefs = result.scalar_one_or_none()

    if not prefs:
        # Create default preferences
        prefs = NotificationPreference(user_id=user_id)
        db.add(prefs)
        await db.flush()

    return prefs


@router.get("/notifications/preferences", response_model=NotificationPreferenceResponse)
async def get_notification_preferences(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
):
    """Get notification preferences for the current user."""
    prefs = await _get_or_create_preferences(db, current_user.id)
    await db.commit()
    await db.refresh(prefs)
    return prefs


@router.patch("/notifications/preferences", response_model=NotificationPreferenceResponse)
async def update_notification_preferences(
    updates: NotificationPreferenceUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
):
    """Update notification preferences for the current user."""
    prefs = await _get_or_create_preferences(db, current_user.id)

    update_data = updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is not None:
            setattr(prefs, field, value)

    await db.commit()
    await db.refresh(prefs)

    return prefs
