"""Domain exceptions.

Validation-class errors raised by the dependency engine and the completion
gate. All of them are user-correctable and map to client errors at the API
boundary.
"""

from typing import Any


class ProjectHubError(Exception):
    """Base exception for domain errors."""

    def __init__(self, message: str, code: str = "PROJECTHUB_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error body."""
        return {"error": self.message, "code": self.code}


class NotFoundError(ProjectHubError):
    """Referenced entity does not exist or the caller cannot access it.

    Both cases are reported identically so callers cannot probe for ids.
    """

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message=f"{entity} not found",
            code="NOT_FOUND",
        )


class InvalidDependencyError(ProjectHubError):
    """Dependency edge is malformed (self-reference, duplicate edge)."""

    def __init__(self, message: str = "Source and target cannot be the same"):
        super().__init__(message=message, code="INVALID_DEPENDENCY")


class CycleDetectedError(ProjectHubError):
    """Adding the edge would close a directed cycle."""

    def __init__(self, source_id: Any, target_id: Any):
        self.source_id = source_id
        self.target_id = target_id
        super().__init__(
            message="Circular dependency detected",
            code="CYCLE_DETECTED",
        )


class BlockedByDependencyError(ProjectHubError):
    """Task cannot be completed while upstream dependencies are incomplete."""

    def __init__(self, blocking_tasks: list[dict[str, Any]]):
        self.blocking_tasks = blocking_tasks
        titles = ", ".join(t["title"] for t in blocking_tasks)
        super().__init__(
            message=f"Cannot complete task. Blocked by incomplete dependencies: {titles}",
            code="BLOCKED_BY_DEPENDENCY",
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["blocking_tasks"] = self.blocking_tasks
        return data


class BlockedBySubtaskError(ProjectHubError):
    """Task cannot be completed while direct subtasks are incomplete."""

    def __init__(self, incomplete_subtasks: list[dict[str, Any]]):
        self.incomplete_subtasks = incomplete_subtasks
        titles = ", ".join(t["title"] for t in incomplete_subtasks)
        super().__init__(
            message=f"Cannot complete task. Incomplete subtasks: {titles}",
            code="BLOCKED_BY_SUBTASK",
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["incomplete_subtasks"] = self.incomplete_subtasks
        return data
