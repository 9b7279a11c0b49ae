"""Enumerations shared by models, services and API schemas."""

from enum import Enum


class TaskStatus(str, Enum):
    """Task workflow states. Any state may move to any other; entry into DONE is gated."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"
    BLOCKED = "BLOCKED"


class TaskPriority(str, Enum):
    """Task priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class DependencyKind(str, Enum):
    """Entity kind a dependency edge connects. Edges never cross kinds."""

    PROJECT = "PROJECT"
    LIST = "LIST"
    TASK = "TASK"


class NotificationType(str, Enum):
    """Kinds of events a user can be notified about."""

    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_COMMENTED = "TASK_COMMENTED"
    TASK_DUE_SOON = "TASK_DUE_SOON"
    TASK_OVERDUE = "TASK_OVERDUE"
    MENTIONED = "MENTIONED"
    PROJECT_MEMBER_ADDED = "PROJECT_MEMBER_ADDED"
    PROJECT_ROLE_CHANGED = "PROJECT_ROLE_CHANGED"
    MILESTONE_COMPLETED = "MILESTONE_COMPLETED"
    MILESTONE_AT_RISK = "MILESTONE_AT_RISK"
    INVITATION_ACCEPTED = "INVITATION_ACCEPTED"
    SECURITY_ALERT = "SECURITY_ALERT"
    SYSTEM = "SYSTEM"


DEFAULT_DEPENDENCY_TYPE = "FINISH_TO_START"
