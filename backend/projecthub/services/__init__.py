"""Services package."""

from projecthub.services.comments import CommentService
from projecthub.services.dependency import DependencyService
from projecthub.services.due_dates import DueDateNotifier
from projecthub.services.email import EmailSender, SMTPEmailSender
from projecthub.services.mentions import parse_mentions, resolve_mentions
from projecthub.services.notification import (
    NotificationEvent,
    NotificationPreferenceResolver,
    NotificationService,
)
from projecthub.services.realtime import LoggingPublisher, RealtimePublisher
from projecthub.services.task_assignment import TaskAssignmentService
from projecthub.services.task_status import TaskStatusService

__all__ = [
    "CommentService",
    "DependencyService",
    "DueDateNotifier",
    "EmailSender",
    "SMTPEmailSender",
    "parse_mentions",
    "resolve_mentions",
    "NotificationEvent",
    "NotificationPreferenceResolver",
    "NotificationService",
    "LoggingPublisher",
    "RealtimePublisher",
    "TaskAssignmentService",
    "TaskStatusService",
]
