"""Dependency API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.api.deps import handle_domain_error
from projecthub.api.v1.auth import CurrentUser
from projecthub.db.session import get_db_session
from projecthub.exceptions import ProjectHubError
from projecthub.models.enums import DEFAULT_DEPENDENCY_TYPE, DependencyKind
from projecthub.services.dependency import DependencyEdge, DependencyService

router = APIRouter()
logger = structlog.get_logger()


class DependencyCreate(BaseModel):
    """Schema for creating a dependency edge."""

    type: DependencyKind
    source_id: UUID
    target_id: UUID
    dependency_type: str = Field(default=DEFAULT_DEPENDENCY_TYPE, max_length=50)


class DependencyEndpoint(BaseModel):
    id: UUID
    name: str
    status: str | None = None


class DependencyResponse(BaseModel):
    """Dependency edge response."""

    id: UUID
    kind: DependencyKind
    source_id: UUID
    target_id: UUID
    dependency_type: str
    source: DependencyEndpoint | None = None
    target: DependencyEndpoint | None = None
    created_at: datetime


def _endpoint(entity: Any) -> DependencyEndpoint | None:
    if entity is None:
        return None
    return DependencyEndpoint(
        id=entity.id,
        name=getattr(entity, "title", None) or getattr(entity, "name", ""),
        status=getattr(entity, "status", None),
    )


def _to_response(
    edge: DependencyEdge,
    kind: DependencyKind,
    with_source: bool = False,
    with_target: bool = False,
) -> DependencyResponse:
    return DependencyResponse(
        id=edge.id,
        kind=kind,
        source_id=edge.source_id,
        target_id=edge.target_id,
        dependency_type=edge.type,
        source=_endpoint(edge.source) if with_source else None,
        target=_endpoint(edge.target) if with_target else None,
        created_at=edge.created_at,
    )


@router.post("/", response_model=DependencyResponse, status_code=status.HTTP_201_CREATED)
async def create_dependency(
    data: DependencyCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> DependencyResponse:
    """Create a dependency: ``source_id`` must complete before ``target_id``."""
    service = DependencyService(db)
    try:
        edge = await service.create_dependency(
            source_id=data.source_id,
            target_id=data.target_id,
            kind=data.type,
            dependency_type=data.dependency_type,
            user_id=current_user.id,
        )
    except ProjectHubError as e:
        raise handle_domain_error(e)

    return _to_response(edge, data.type)


@router.delete("/{dependency_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dependency(
    dependency_id: UUID,
    current_user: CurrentUser,
    kind: DependencyKind = Query(..., alias="type"),
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """Delete a dependency edge."""
    service = DependencyService(db)
    try:
        await service.delete_dependency(dependency_id, kind, user_id=current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)


@router.get("/{target_id}", response_model=list[DependencyResponse])
async def list_dependencies(
    target_id: UUID,
    current_user: CurrentUser,
    kind: DependencyKind = Query(..., alias="type"),
    db: AsyncSession = Depends(get_db_session),
) -> list[DependencyResponse]:
    """List the prerequisites of an entity, with each source summarised."""
    service = DependencyService(db)
    try:
        edges = await service.list_dependencies(target_id, kind, user_id=current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)

    return [_to_response(edge, kind, with_source=True) for edge in edges]


@router.get("/{source_id}/dependents", response_model=list[DependencyResponse])
async def list_dependents(
    source_id: UUID,
    current_user: CurrentUser,
    kind: DependencyKind = Query(..., alias="type"),
    db: AsyncSession = Depends(get_db_session),
) -> list[DependencyResponse]:
    """List the entities waiting on ``source_id``."""
    service = DependencyService(db)
    try:
        edges = await service.list_dependents(source_id, kind, user_id=current_user.id)
    except ProjectHubError as e:
        raise handle_domain_error(e)

    return [_to_response(edge, kind, with_target=True) for edge in edges]
