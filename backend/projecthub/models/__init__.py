"""SQLAlchemy models package."""

from projecthub.models.organization import Organization, OrganizationMember
from projecthub.models.user import User
from projecthub.models.project import (
    Comment,
    Mention,
    Project,
    Task,
    TaskAssignee,
    TaskList,
    TaskWatcher,
)
from projecthub.models.dependency import (
    ListDependency,
    ProjectDependency,
    TaskDependency,
)
from projecthub.models.activity import (
    Activity,
    Notification,
    NotificationPreference,
)
from projecthub.models.enums import (
    DependencyKind,
    NotificationType,
    TaskPriority,
    TaskStatus,
)

__all__ = [
    # User & Organization
    "User",
    "Organization",
    "OrganizationMember",
    # Projects & Tasks
    "Project",
    "TaskList",
    "Task",
    "TaskAssignee",
    "TaskWatcher",
    "Comment",
    "Mention",
    # Dependencies
    "ProjectDependency",
    "ListDependency",
    "TaskDependency",
    # Activity & Notifications
    "Activity",
    "Notification",
    "NotificationPreference",
    # Enums
    "DependencyKind",
    "NotificationType",
    "TaskPriority",
    "TaskStatus",
]
