"""Dependency graph service.

Maintains the three dependency edge sets (project, list, task) and keeps
each of them acyclic. An edge ``source -> target`` means the source must
complete before the target can complete.
"""

from typing import Sequence, Union
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.exceptions import (
    CycleDetectedError,
    InvalidDependencyError,
    NotFoundError,
)
from projecthub.models.dependency import ListDependency, ProjectDependency, TaskDependency
from projecthub.models.enums import DEFAULT_DEPENDENCY_TYPE, DependencyKind, TaskStatus
from projecthub.models.project import Project, Task, TaskList
from projecthub.services.access_control import (
    check_project_access,
    get_accessible_list,
    get_accessible_task,
)

logger = structlog.get_logger()

DependencyEdge = Union[ProjectDependency, ListDependency, TaskDependency]

# kind -> (entity model, edge model)
KIND_MODELS = {
    DependencyKind.PROJECT: (Project, ProjectDependency),
    DependencyKind.LIST: (TaskList, ListDependency),
    DependencyKind.TASK: (Task, TaskDependency),
}


class DependencyService:
    """Service for creating, removing and querying dependency edges."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Edge CRUD
    # =========================================================================

    async def create_dependency(
        self,
        source_id: UUID,
        target_id: UUID,
        kind: DependencyKind | str,
        dependency_type: str = DEFAULT_DEPENDENCY_TYPE,
        user_id: UUID | None = None,
    ) -> DependencyEdge:
        """Create a dependency edge after validating it.

        Raises:
            InvalidDependencyError: self-dependency or duplicate edge
            NotFoundError: an endpoint is missing or inaccessible
            CycleDetectedError: the edge would close a cycle
        """
        kind = DependencyKind(kind)
        if source_id == target_id:
            raise InvalidDependencyError()

        _, edge_model = KIND_MODELS[kind]

        await self._ensure_endpoint(kind, source_id, user_id)
        await self._ensure_endpoint(kind, target_id, user_id)

        existing = await self.db.execute(
            select(edge_model.id).where(
                edge_model.source_id == source_id,
                edge_model.target_id == target_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise InvalidDependencyError("Dependency already exists")

        # Adding source -> target closes a cycle iff source is already
        # reachable from target.
        if await self.path_exists(kind, start_id=target_id, goal_id=source_id):
            logger.info(
                "dependency_cycle_rejected",
                kind=kind.value,
                source_id=str(source_id),
                target_id=str(target_id),
            )
            raise CycleDetectedError(source_id, target_id)

        edge = edge_model(
            source_id=source_id,
            target_id=target_id,
            type=dependency_type or DEFAULT_DEPENDENCY_TYPE,
        )
        self.db.add(edge)
        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(
            "dependency_created",
            dependency_id=str(edge.id),
            kind=kind.value,
            source_id=str(source_id),
            target_id=str(target_id),
            dependency_type=edge.type,
        )

        return edge

    async def delete_dependency(
        self,
        dependency_id: UUID,
        kind: DependencyKind | str,
        user_id: UUID | None = None,
    ) -> None:
        """Delete a dependency edge. No cascading side effects."""
        kind = DependencyKind(kind)
        _, edge_model = KIND_MODELS[kind]

        result = await self.db.execute(
            select(edge_model).where(edge_model.id == dependency_id)
        )
        edge = result.scalar_one_or_none()
        if edge is None:
            raise NotFoundError("Dependency", dependency_id)

        if user_id is not None:
            try:
                await self._ensure_endpoint(kind, edge.target_id, user_id)
            except NotFoundError:
                raise NotFoundError("Dependency", dependency_id)

        await self.db.delete(edge)
        await self.db.commit()

        logger.info(
            "dependency_deleted",
            dependency_id=str(dependency_id),
            kind=kind.value,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_dependencies(
        self,
        target_id: UUID,
        kind: DependencyKind | str,
        user_id: UUID | None = None,
    ) -> Sequence[DependencyEdge]:
        """Get all edges pointing at ``target_id`` with their source loaded."""
        kind = DependencyKind(kind)
        _, edge_model = KIND_MODELS[kind]
        await self._ensure_endpoint(kind, target_id, user_id)

        result = await self.db.execute(
            select(edge_model)
            .options(selectinload(edge_model.source))
            .where(edge_model.target_id == target_id)
            .order_by(edge_model.created_at)
        )
        return result.scalars().all()

    async def list_dependents(
        self,
        source_id: UUID,
        kind: DependencyKind | str,
        user_id: UUID | None = None,
    ) -> Sequence[DependencyEdge]:
        """Get all edges leaving ``source_id`` with their target loaded."""
        kind = DependencyKind(kind)
        _, edge_model = KIND_MODELS[kind]
        await self._ensure_endpoint(kind, source_id, user_id)

        result = await self.db.execute(
            select(edge_model)
            .options(selectinload(edge_model.target))
            .where(edge_model.source_id == source_id)
            .order_by(edge_model.created_at)
        )
        return result.scalars().all()

    async def path_exists(
        self,
        kind: DependencyKind | str,
        start_id: UUID,
        goal_id: UUID,
    ) -> bool:
        """Check whether ``goal_id`` is reachable from ``start_id``.

        Walks the edge set one frontier level per query. The visited set
        guarantees termination even if the stored graph already contains a
        cycle.
        """
        kind = DependencyKind(kind)
        _, edge_model = KIND_MODELS[kind]

        if start_id == goal_id:
            return True

        visited: set[UUID] = {start_id}
        frontier: set[UUID] = {start_id}
        depth = 0

        while frontier:
            result = await self.db.execute(
                select(edge_model.target_id).where(edge_model.source_id.in_(frontier))
            )
            next_ids = set(result.scalars().all())
            if goal_id in next_ids:
                logger.debug(
                    "dependency_path_found",
                    kind=kind.value,
                    start_id=str(start_id),
                    goal_id=str(goal_id),
                    depth=depth + 1,
                )
                return True
            frontier = next_ids - visited
            visited |= frontier
            depth += 1

        return False

    async def find_blocking_tasks(
        self,
        task_id: UUID,
        lock: bool = False,
    ) -> Sequence[Task]:
        """Get the prerequisite tasks of ``task_id`` that are not DONE.

        Edges whose source task no longer exists are ignored, i.e. treated
        as satisfied.
        """
        query = (
            select(Task)
            .join(TaskDependency, TaskDependency.source_id == Task.id)
            .where(
                TaskDependency.target_id == task_id,
                Task.status != TaskStatus.DONE.value,
            )
            .order_by(Task.title)
        )
        if lock:
            query = query.with_for_update(read=True, of=Task)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def delete_edges_for_task(self, task_id: UUID) -> int:
        """Remove every task edge touching ``task_id``. Returns the count."""
        result = await self.db.execute(
            select(TaskDependency).where(
                (TaskDependency.source_id == task_id)
                | (TaskDependency.target_id == task_id)
            )
        )
        edges = result.scalars().all()
        for edge in edges:
            await self.db.delete(edge)
        return len(edges)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _ensure_endpoint(
        self,
        kind: DependencyKind,
        entity_id: UUID,
        user_id: UUID | None,
    ) -> None:
        """Ensure an edge endpoint exists (and is accessible when a user is given)."""
        if user_id is not None:
            if kind == DependencyKind.TASK:
                await get_accessible_task(self.db, entity_id, user_id)
            elif kind == DependencyKind.LIST:
                await get_accessible_list(self.db, entity_id, user_id)
            else:
                await check_project_access(self.db, entity_id, user_id)
            return

        entity_model, _ = KIND_MODELS[kind]
        result = await self.db.execute(
            select(entity_model.id).where(entity_model.id == entity_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError(kind.value.capitalize(), entity_id)
