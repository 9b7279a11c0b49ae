"""Activity log and notification models."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.db.base import BaseModel, JSONType

if TYPE_CHECKING:
    from projecthub.models.user import User


class Activity(BaseModel):
    """
    Activity log entry for task mutations.

    One row is written per semantically distinct field change, plus one per
    collaboration action (comment, assignment).
    """

    __tablename__ = "activities"

    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="STATUS_CHANGED, PRIORITY_CHANGED, DUE_DATE_CHANGED, COMMENTED, ASSIGNED, ...",
    )
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="TASK",
    )
    entity_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )

    # Context
    task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # Actor
    actor_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Field change details
    field: Mapped[str | None] = mapped_column(String(50), nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Human-readable description of the activity",
    )

    def __repr__(self) -> str:
        return f"<Activity {self.action} on {self.entity_type}={self.entity_id}>"


class Notification(BaseModel):
    """
    User notification produced by the fan-out pipeline.

    Rows are append-only; only is_read/read_at change after creation.
    """

    __tablename__ = "notifications"

    notification_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Recipient
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Who triggered it
    actor_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Context references
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
    )
    task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    milestone_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
    )

    # Status
    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Additional data
    extra_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Relationships
    actor: Mapped["User | None"] = relationship("User", foreign_keys=[actor_id])

    def __repr__(self) -> str:
        return f"<Notification {self.notification_type} user={self.user_id}>"


class NotificationPreference(BaseModel):
    """
    Per-user delivery preferences, one in-app/email pair per category.

    A user without a row is treated as having every flag set to True.
    """

    __tablename__ = "notification_preferences"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    task_assigned_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    task_assigned_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    task_status_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    task_status_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    task_comment_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    task_comment_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    task_due_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    task_due_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    project_member_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    project_member_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    project_role_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    project_role_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    milestone_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    milestone_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    invitation_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    invitation_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<NotificationPreference user={self.user_id}>"
