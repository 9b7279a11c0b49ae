"""Tests for notification fan-out delivery."""
from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import RecordingEmailSender, RecordingPublisher, make_task
from projecthub.config import Settings
from projecthub.models import Notification, NotificationPreference, NotificationType
from projecthub.services.notification import NotificationEvent, NotificationService


class ExplodingPublisher(RecordingPublisher):
    async def emit_to_user(self, user_id, event, payload):
        raise RuntimeError("socket closed")


def event_for(workspace, task, recipient, notification_type=NotificationType.TASK_ASSIGNED, **extra):
    return NotificationEvent(
        type=notification_type,
        recipient_id=recipient.id,
        title=f"Heads up: {task.title}",
        message=f"Something happened on '{task.title}'",
        actor_id=workspace.alice.id,
        project_id=workspace.project.id,
        task_id=task.id,
        metadata={"task_title": task.title, "project_name": workspace.project.name, "actor_name": "Alice"},
        **extra,
    )


@pytest.mark.asyncio
async def test_notify_persists_pushes_and_emails(db_session, workspace, notifications, realtime, email_sender):
    task = await make_task(db_session, workspace, "Write docs")

    notification = await notifications.notify(event_for(workspace, task, workspace.bob))

    assert notification is not None
    assert notification.notification_type == "TASK_ASSIGNED"
    assert notification.user_id == workspace.bob.id
    assert notification.is_read is False
    assert notification.extra_data["task_title"] == "Write docs"

    assert len(realtime.user_events) == 1
    user_id, event, payload = realtime.user_events[0]
    assert (user_id, event) == (str(workspace.bob.id), "notification:new")
    assert payload["id"] == str(notification.id)
    assert payload["type"] == "TASK_ASSIGNED"
    assert payload["metadata"]["project_name"] == "Launch"

    assert [m["to"] for m in email_sender.sent] == ["bob@example.com"]
    assert "Write docs" in email_sender.sent[0]["html"]


@pytest.mark.asyncio
async def test_email_failure_keeps_in_app_notification(db_session, workspace, realtime):
    task = await make_task(db_session, workspace, "Fragile")
    service = NotificationService(db_session, realtime, RecordingEmailSender(fail=True))

    notification = await service.notify(event_for(workspace, task, workspace.bob))

    assert notification is not None
    rows = (await db_session.execute(select(Notification))).scalars().all()
    assert [n.user_id for n in rows] == [workspace.bob.id]
    assert len(realtime.user_events) == 1


@pytest.mark.asyncio
async def test_push_failure_keeps_in_app_notification(db_session, workspace, email_sender):
    task = await make_task(db_session, workspace, "Offline")
    service = NotificationService(db_session, ExplodingPublisher(), email_sender)

    notification = await service.notify(event_for(workspace, task, workspace.bob))

    assert notification is not None
    assert len(email_sender.sent) == 1


@pytest.mark.asyncio
async def test_storage_failure_is_swallowed(db_session, workspace, notifications, realtime, email_sender, monkeypatch):
    task = await make_task(db_session, workspace, "Unlucky")

    async def broken_lookup(user_id):
        raise ConnectionError("database went away")

    monkeypatch.setattr(notifications, "_get_preferences", broken_lookup)

    result = await notifications.notify(event_for(workspace, task, workspace.bob))

    assert result is None
    assert realtime.user_events == []
    assert email_sender.sent == []
    # The session is usable again afterwards
    assert (await db_session.execute(select(Notification))).scalars().all() == []


@pytest.mark.asyncio
async def test_self_notification_is_skipped(db_session, workspace, notifications, realtime, email_sender):
    task = await make_task(db_session, workspace, "Mine")

    result = await notifications.notify(event_for(workspace, task, workspace.alice))

    assert result is None
    assert realtime.user_events == []
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_disabled_in_app_still_emails(db_session, workspace, notifications, realtime, email_sender):
    task = await make_task(db_session, workspace, "Quiet")
    db_session.add(NotificationPreference(user_id=workspace.bob.id, task_assigned_in_app=False))
    await db_session.commit()

    result = await notifications.notify(event_for(workspace, task, workspace.bob))

    assert result is None
    assert realtime.user_events == []
    assert len(email_sender.sent) == 1


@pytest.mark.asyncio
async def test_disabled_email_only_stores(db_session, workspace, notifications, email_sender):
    task = await make_task(db_session, workspace, "No mail")
    db_session.add(NotificationPreference(user_id=workspace.carol.id, task_assigned_email=False))
    await db_session.commit()

    result = await notifications.notify(event_for(workspace, task, workspace.carol))

    assert result is not None
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_links_built_from_context(db_session, realtime, email_sender):
    service = NotificationService(
        db_session, realtime, email_sender, settings=Settings(frontend_url="https://app.example.com/")
    )
    project_id, task_id = uuid4(), uuid4()

    assert service.build_link(project_id, task_id) == f"https://app.example.com/projects/{project_id}/tasks/{task_id}"
    assert service.build_link(project_id, None) == f"https://app.example.com/projects/{project_id}"
    assert service.build_link(None, None) is None


@pytest.mark.asyncio
async def test_explicit_link_wins(db_session, workspace, notifications):
    task = await make_task(db_session, workspace, "Linked")

    result = await notifications.notify(
        event_for(workspace, task, workspace.bob, link="https://example.com/custom")
    )

    assert result.link == "https://example.com/custom"


@pytest.mark.asyncio
async def test_notify_many_checks_each_recipient(db_session, workspace, notifications):
    task = await make_task(db_session, workspace, "Broadcast")
    db_session.add(NotificationPreference(user_id=workspace.carol.id, task_status_in_app=False))
    await db_session.commit()

    created = await notifications.notify_many(
        [workspace.alice.id, workspace.bob.id, workspace.carol.id],
        NotificationType.TASK_STATUS_CHANGED,
        title="Status changed",
        message="Broadcast moved to IN_REVIEW",
        actor_id=workspace.alice.id,
        project_id=workspace.project.id,
        task_id=task.id,
    )

    assert [n.user_id for n in created] == [workspace.bob.id]
