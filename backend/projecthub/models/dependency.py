"""Dependency edge models.

An edge ``source -> target`` means the source must complete before the
target can complete. Each entity kind has its own edge table; edges never
connect entities of different kinds.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.db.base import BaseModel
from projecthub.models.enums import DEFAULT_DEPENDENCY_TYPE

if TYPE_CHECKING:
    from projecthub.models.project import Project, Task, TaskList


class ProjectDependency(BaseModel):
    """Project-level dependency."""

    __tablename__ = "project_dependencies"
    __table_args__ = (
        UniqueConstraint("source_id", "target_id", name="uq_project_dependency"),
    )

    source_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DEFAULT_DEPENDENCY_TYPE
    )

    # Relationships
    source: Mapped["Project"] = relationship("Project", foreign_keys=[source_id])
    target: Mapped["Project"] = relationship("Project", foreign_keys=[target_id])

    def __repr__(self) -> str:
        return f"<ProjectDependency {self.source_id} -> {self.target_id}>"


class ListDependency(BaseModel):
    """List-level dependency."""

    __tablename__ = "list_dependencies"
    __table_args__ = (
        UniqueConstraint("source_id", "target_id", name="uq_list_dependency"),
    )

    source_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("task_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("task_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DEFAULT_DEPENDENCY_TYPE
    )

    # Relationships
    source: Mapped["TaskList"] = relationship("TaskList", foreign_keys=[source_id])
    target: Mapped["TaskList"] = relationship("TaskList", foreign_keys=[target_id])

    def __repr__(self) -> str:
        return f"<ListDependency {self.source_id} -> {self.target_id}>"


class TaskDependency(BaseModel):
    """Task-level dependency. Consulted by the completion gate."""

    __tablename__ = "task_dependencies"
    __table_args__ = (
        UniqueConstraint("source_id", "target_id", name="uq_task_dependency"),
    )

    source_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DEFAULT_DEPENDENCY_TYPE
    )

    # Relationships
    source: Mapped["Task"] = relationship("Task", foreign_keys=[source_id])
    target: Mapped["Task"] = relationship("Task", foreign_keys=[target_id])

    def __repr__(self) -> str:
        return f"<TaskDependency {self.source_id} -> {self.target_id}>"
