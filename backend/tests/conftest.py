"""Pytest configuration and fixtures for service and API tests."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from projecthub.api.v1.auth import create_access_token
from projecthub.db.base import Base
from projecthub.db.session import get_db_session
from projecthub.main import create_app
from projecthub.models import (
    Organization,
    OrganizationMember,
    Project,
    Task,
    TaskAssignee,
    TaskList,
    TaskWatcher,
    User,
)
from projecthub.services.notification import NotificationService
from projecthub.services.task_status import TaskStatusService


class RecordingPublisher:
    """Realtime sink that records every event."""

    def __init__(self):
        self.user_events: list[tuple[str, str, dict[str, Any]]] = []
        self.workspace_events: list[tuple[str, str, dict[str, Any]]] = []

    async def emit_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        self.user_events.append((user_id, event, payload))

    async def emit_to_workspace(self, workspace_id: str, event: str, payload: dict[str, Any]) -> None:
        self.workspace_events.append((workspace_id, event, payload))


class RecordingEmailSender:
    """Email sink that records messages, or raises when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict[str, str]] = []

    async def send_email(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP relay unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html})


@dataclass
class Workspace:
    """Seeded organization with members and a project."""

    organization: Organization
    project: Project
    task_list: TaskList
    alice: User
    bob: User
    carol: User
    guest: User
    outsider: User
    tasks: dict[str, Task] = field(default_factory=dict)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a throwaway SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'projecthub.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def realtime():
    return RecordingPublisher()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def notifications(db_session, realtime, email_sender):
    return NotificationService(db_session, realtime, email_sender)


@pytest.fixture
def status_service(db_session, notifications, realtime):
    return TaskStatusService(db_session, notifications, realtime)


async def make_user(db: AsyncSession, name: str, is_active: bool = True) -> User:
    user = User(
        email=f"{name.lower()}@example.com",
        first_name=name,
        display_name=name,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def make_task(
    db: AsyncSession,
    workspace: Workspace,
    title: str,
    status: str = "TODO",
    parent: Task | None = None,
    due_date: datetime | None = None,
    completed_at: datetime | None = None,
) -> Task:
    task = Task(
        title=title,
        status=status,
        project_id=workspace.project.id,
        list_id=workspace.task_list.id,
        parent_id=parent.id if parent else None,
        due_date=due_date,
        completed_at=completed_at,
        created_by_id=workspace.alice.id,
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    workspace.tasks[title] = task
    return task


async def follow(db: AsyncSession, task: Task, assignees: list[User] = (), watchers: list[User] = ()):
    """Attach assignees and watchers directly, without notifications."""
    for user in assignees:
        db.add(TaskAssignee(task_id=task.id, user_id=user.id))
    for user in watchers:
        db.add(TaskWatcher(task_id=task.id, user_id=user.id))
    await db.commit()


@pytest_asyncio.fixture(scope="function")
async def workspace(db_session) -> Workspace:
    """An organization with three members, a guest, and one outsider."""
    org = Organization(name="Acme", slug="acme")
    other_org = Organization(name="Globex", slug="globex")
    db_session.add_all([org, other_org])
    await db_session.flush()

    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    guest = await make_user(db_session, "Gus")
    outsider = await make_user(db_session, "Olga")

    db_session.add_all(
        [
            OrganizationMember(organization_id=org.id, user_id=alice.id, role="admin"),
            OrganizationMember(organization_id=org.id, user_id=bob.id, role="member"),
            OrganizationMember(organization_id=org.id, user_id=carol.id, role="member"),
            OrganizationMember(organization_id=org.id, user_id=guest.id, role="guest"),
            OrganizationMember(organization_id=other_org.id, user_id=outsider.id, role="admin"),
        ]
    )

    project = Project(name="Launch", organization_id=org.id, created_by_id=alice.id)
    db_session.add(project)
    await db_session.flush()

    task_list = TaskList(name="Backlog", project_id=project.id)
    db_session.add(task_list)
    await db_session.commit()

    return Workspace(
        organization=org,
        project=project,
        task_list=task_list,
        alice=alice,
        bob=bob,
        carol=carol,
        guest=guest,
        outsider=outsider,
    )


@pytest_asyncio.fixture(scope="function")
async def app(session_factory, realtime, email_sender):
    """Create the app with overridden database and recording sinks."""
    application = create_app(realtime=realtime, email_sender=email_sender, use_lifespan=False)

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = override_get_session
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth_headers(user_or_id: User | UUID) -> dict[str, str]:
    user_id = user_or_id.id if isinstance(user_or_id, User) else user_or_id
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}
