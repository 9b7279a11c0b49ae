"""Task comments with @mention fan-out."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.exceptions import NotFoundError
from projecthub.models.enums import NotificationType
from projecthub.models.project import Comment, Mention
from projecthub.models.user import User
from projecthub.services.access_control import get_accessible_task
from projecthub.services.activity import log_activity
from projecthub.services.mentions import parse_mentions, resolve_mentions
from projecthub.services.notification import NotificationEvent, NotificationService
from projecthub.services.realtime import RealtimePublisher
from projecthub.services.recipients import task_recipient_ids

logger = structlog.get_logger()

# Longest comment excerpt carried in notification metadata
EXCERPT_LENGTH = 200


def comment_to_payload(comment: Comment, mentioned_ids: list[UUID] | None = None) -> dict[str, Any]:
    return {
        "id": str(comment.id),
        "task_id": str(comment.task_id),
        "created_by_id": str(comment.created_by_id),
        "parent_id": str(comment.parent_id) if comment.parent_id else None,
        "content": comment.content,
        "mentions": [str(uid) for uid in (mentioned_ids or [])],
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


class CommentService:
    """Create task comments and notify the people they concern."""

    def __init__(
        self,
        db: AsyncSession,
        notifications: NotificationService,
        realtime: RealtimePublisher,
    ):
        self.db = db
        self.notifications = notifications
        self.realtime = realtime

    async def create_comment(
        self,
        task_id: UUID,
        content: str,
        actor_id: UUID,
        parent_id: UUID | None = None,
    ) -> tuple[Comment, list[UUID]]:
        """
        Post a comment on a task.

        Mentioned users get a MENTIONED notification; the remaining
        assignees and watchers get TASK_COMMENTED. Nobody is notified twice
        and the author is never notified.

        Returns:
            The comment and the ids of the users it mentions
        """
        task, project = await get_accessible_task(self.db, task_id, actor_id)

        if parent_id is not None:
            result = await self.db.execute(
                select(Comment.id).where(Comment.id == parent_id, Comment.task_id == task.id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Comment", parent_id)

        mentioned_users = await resolve_mentions(
            self.db, parse_mentions(content), project.organization_id
        )
        mentioned_ids = sorted((u.id for u in mentioned_users), key=str)

        comment = Comment(
            task_id=task.id,
            created_by_id=actor_id,
            content=content,
            parent_id=parent_id,
        )
        self.db.add(comment)
        await self.db.flush()

        for user_id in mentioned_ids:
            self.db.add(
                Mention(comment_id=comment.id, user_id=user_id, mentioned_by_id=actor_id)
            )

        log_activity(
            self.db,
            action="COMMENTED",
            entity_id=task.id,
            actor_id=actor_id,
            task_id=task.id,
            project_id=project.id,
            description=content[:EXCERPT_LENGTH],
        )

        await self.db.commit()
        await self.db.refresh(comment)

        logger.info(
            "comment_created",
            comment_id=str(comment.id),
            task_id=str(task.id),
            user_id=str(actor_id),
            mentions=len(mentioned_ids),
        )

        try:
            await self.realtime.emit_to_workspace(
                str(project.organization_id),
                "comment:created",
                comment_to_payload(comment, mentioned_ids),
            )
        except Exception:
            logger.warning("realtime_broadcast_failed", event="comment:created", exc_info=True)

        # Plain values from here on: a failed delivery rolls the session back
        task_id, task_title, project_id = task.id, task.title, project.id
        actor_name = await self._display_name(actor_id)
        metadata = {
            "task_title": task_title,
            "project_name": project.name,
            "actor_name": actor_name,
            "comment_id": str(comment.id),
            "comment_content": content[:EXCERPT_LENGTH],
        }

        for user_id in mentioned_ids:
            if user_id == actor_id:
                continue
            await self.notifications.notify(
                NotificationEvent(
                    type=NotificationType.MENTIONED,
                    recipient_id=user_id,
                    title=f"{actor_name} mentioned you",
                    message=f"{actor_name} mentioned you in a comment on '{task_title}'",
                    actor_id=actor_id,
                    project_id=project_id,
                    task_id=task_id,
                    metadata=dict(metadata),
                )
            )

        recipients = await task_recipient_ids(
            self.db, task_id, actor_id=actor_id, exclude=mentioned_ids
        )
        await self.notifications.notify_many(
            recipients,
            NotificationType.TASK_COMMENTED,
            title=f"New comment on {task_title}",
            message=f"{actor_name} commented on '{task_title}'",
            actor_id=actor_id,
            project_id=project_id,
            task_id=task_id,
            metadata=metadata,
        )

        await self.db.refresh(comment)
        return comment, mentioned_ids

    async def _display_name(self, user_id: UUID) -> str:
        result = await self.db.execute(select(User.display_name).where(User.id == user_id))
        return result.scalar_one_or_none() or "Someone"
