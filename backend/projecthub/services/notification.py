"""Notification preference resolution and fan-out delivery."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.config import Settings, get_settings
from projecthub.models.activity import Notification, NotificationPreference
from projecthub.models.enums import NotificationType
from projecthub.models.user import User
from projecthub.services.email import EmailSender, render_notification_email
from projecthub.services.realtime import RealtimePublisher

logger = structlog.get_logger()

NOTIFICATION_EVENT = "notification:new"


class NotificationPreferenceResolver:
    """Decide in-app and email delivery for one recipient and one type."""

    # Map notification types to preference categories. Each category has an
    # ``<category>_in_app`` and ``<category>_email`` column.
    TYPE_TO_CATEGORY = {
        NotificationType.TASK_ASSIGNED.value: "task_assigned",
        NotificationType.TASK_STATUS_CHANGED.value: "task_status",
        NotificationType.TASK_COMMENTED.value: "task_comment",
        NotificationType.TASK_DUE_SOON.value: "task_due",
        NotificationType.TASK_OVERDUE.value: "task_due",
        NotificationType.PROJECT_MEMBER_ADDED.value: "project_member",
        NotificationType.PROJECT_ROLE_CHANGED.value: "project_role",
        NotificationType.MILESTONE_COMPLETED.value: "milestone",
        NotificationType.MILESTONE_AT_RISK.value: "milestone",
        NotificationType.INVITATION_ACCEPTED.value: "invitation",
    }

    # Types delivered on a channel regardless of stored preferences
    ALWAYS_IN_APP = frozenset({NotificationType.MENTIONED.value})
    ALWAYS_EMAIL = frozenset(
        {NotificationType.MENTIONED.value, NotificationType.SECURITY_ALERT.value}
    )

    def __init__(
        self,
        always_in_app: Iterable[str] | None = None,
        always_email: Iterable[str] | None = None,
    ):
        self.always_in_app = (
            frozenset(always_in_app) if always_in_app is not None else self.ALWAYS_IN_APP
        )
        self.always_email = (
            frozenset(always_email) if always_email is not None else self.ALWAYS_EMAIL
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationPreferenceResolver":
        always_email = set(cls.ALWAYS_EMAIL)
        if not settings.notify_mentions_email_always:
            always_email.discard(NotificationType.MENTIONED.value)
        return cls(always_email=always_email)

    def resolve(
        self,
        notification_type: NotificationType | str,
        preference: NotificationPreference | None,
    ) -> tuple[bool, bool]:
        """Return ``(send_in_app, send_email)``.

        Mapped types follow the stored preference, defaulting to True when
        the user has no preference row. Unmapped types default to in-app
        only.
        """
        type_value = _type_value(notification_type)
        category = self.TYPE_TO_CATEGORY.get(type_value)

        if category is None:
            send_in_app, send_email = True, False
        elif preference is None:
            send_in_app, send_email = True, True
        else:
            send_in_app = getattr(preference, f"{category}_in_app", True)
            send_email = getattr(preference, f"{category}_email", True)

        if type_value in self.always_in_app:
            send_in_app = True
        if type_value in self.always_email:
            send_email = True

        return bool(send_in_app), bool(send_email)


@dataclass
class NotificationEvent:
    """A single notification addressed to one recipient."""

    type: NotificationType | str
    recipient_id: UUID
    title: str
    message: str
    actor_id: UUID | None = None
    project_id: UUID | None = None
    task_id: UUID | None = None
    milestone_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    link: str | None = None


class NotificationService:
    """Create notifications, push them in real time and send emails.

    Delivery is best-effort: ``notify`` never raises, so callers can invoke
    it after committing their primary write without guarding it.
    """

    def __init__(
        self,
        db: AsyncSession,
        realtime: RealtimePublisher,
        email_sender: EmailSender,
        resolver: NotificationPreferenceResolver | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.realtime = realtime
        self.email_sender = email_sender
        self.settings = settings or get_settings()
        self.resolver = resolver or NotificationPreferenceResolver.from_settings(self.settings)

    async def notify(self, event: NotificationEvent) -> Notification | None:
        """
        Deliver one notification according to the recipient's preferences.

        Returns:
            The persisted Notification, or None when in-app delivery was
            skipped or anything failed.
        """
        type_value = _type_value(event.type)

        # Don't notify users about their own actions
        if event.actor_id is not None and event.actor_id == event.recipient_id:
            logger.debug(
                "skipping_self_notification",
                user_id=str(event.recipient_id),
                notification_type=type_value,
            )
            return None

        try:
            preference = await self._get_preferences(event.recipient_id)
            send_in_app, send_email = self.resolver.resolve(type_value, preference)
            link = event.link or self.build_link(event.project_id, event.task_id)

            notification = None
            if send_in_app:
                notification = Notification(
                    notification_type=type_value,
                    user_id=event.recipient_id,
                    actor_id=event.actor_id,
                    project_id=event.project_id,
                    task_id=event.task_id,
                    milestone_id=event.milestone_id,
                    title=event.title,
                    message=event.message,
                    link=link,
                    extra_data=event.metadata or None,
                    is_read=False,
                )
                self.db.add(notification)
                await self.db.commit()
                await self.db.refresh(notification)

                logger.info(
                    "notification_created",
                    notification_id=str(notification.id),
                    user_id=str(event.recipient_id),
                    notification_type=type_value,
                )

                await self._push(notification)

            if send_email:
                await self._send_email(event, type_value, link)

            return notification

        except Exception:
            logger.exception(
                "notification_failed",
                user_id=str(event.recipient_id),
                notification_type=type_value,
            )
            await self._recover_session()
            return None

    async def notify_many(
        self,
        user_ids: Iterable[UUID],
        notification_type: NotificationType | str,
        title: str,
        message: str,
        actor_id: UUID | None = None,
        project_id: UUID | None = None,
        task_id: UUID | None = None,
        milestone_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
        link: str | None = None,
    ) -> list[Notification]:
        """
        Notify several users about the same event.

        Each user's preferences are checked individually.

        Returns:
            List of created Notifications (may be fewer than user_ids)
        """
        notifications = []
        for user_id in user_ids:
            notification = await self.notify(
                NotificationEvent(
                    type=notification_type,
                    recipient_id=user_id,
                    title=title,
                    message=message,
                    actor_id=actor_id,
                    project_id=project_id,
                    task_id=task_id,
                    milestone_id=milestone_id,
                    metadata=dict(metadata or {}),
                    link=link,
                )
            )
            if notification:
                notifications.append(notification)
        return notifications

    def build_link(self, project_id: UUID | None, task_id: UUID | None) -> str | None:
        """Build the deep link for a notification context."""
        base = self.settings.frontend_url.rstrip("/")
        if project_id and task_id:
            return f"{base}/projects/{project_id}/tasks/{task_id}"
        if project_id:
            return f"{base}/projects/{project_id}"
        return None

    async def _get_preferences(self, user_id: UUID) -> NotificationPreference | None:
        """Get notification preferences for a user."""
        result = await self.db.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def _push(self, notification: Notification) -> None:
        try:
            await self.realtime.emit_to_user(
                str(notification.user_id),
                NOTIFICATION_EVENT,
                notification_to_payload(notification),
            )
        except Exception:
            logger.warning(
                "notification_push_failed",
                notification_id=str(notification.id),
                user_id=str(notification.user_id),
                exc_info=True,
            )

    async def _send_email(
        self,
        event: NotificationEvent,
        type_value: str,
        link: str | None,
    ) -> None:
        try:
            result = await self.db.execute(
                select(User.email).where(User.id == event.recipient_id)
            )
            email = result.scalar_one_or_none()
            if not email:
                logger.debug("notification_email_skipped_no_address", user_id=str(event.recipient_id))
                return

            html = render_notification_email(
                type_value, event.title, event.message, link, event.metadata
            )
            await self.email_sender.send_email(email, event.title, html)
        except Exception:
            logger.exception(
                "notification_email_failed",
                user_id=str(event.recipient_id),
                notification_type=type_value,
            )

    async def _recover_session(self) -> None:
        try:
            await self.db.rollback()
        except Exception:
            logger.exception("notification_session_rollback_failed")


def notification_to_payload(notification: Notification) -> dict[str, Any]:
    """Serialize a notification for real-time delivery and API responses."""
    return {
        "id": str(notification.id),
        "type": notification.notification_type,
        "user_id": str(notification.user_id),
        "actor_id": _str_or_none(notification.actor_id),
        "project_id": _str_or_none(notification.project_id),
        "task_id": _str_or_none(notification.task_id),
        "milestone_id": _str_or_none(notification.milestone_id),
        "title": notification.title,
        "message": notification.message,
        "link": notification.link,
        "metadata": notification.extra_data or {},
        "is_read": notification.is_read,
        "read_at": _isoformat(notification.read_at),
        "created_at": _isoformat(notification.created_at),
    }


def _type_value(notification_type: NotificationType | str) -> str:
    if isinstance(notification_type, NotificationType):
        return notification_type.value
    return str(notification_type)


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
