"""Tests for due-date reminders."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import follow, make_task
from projecthub.config import Settings
from projecthub.models import Notification
from projecthub.services.due_dates import DueDateNotifier

NOW = datetime(2024, 5, 1, 12, 0)


@pytest.fixture
def notifier(db_session, notifications):
    return DueDateNotifier(db_session, notifications, settings=Settings(task_due_soon_hours=24))


@pytest.mark.asyncio
async def test_scan_sends_overdue_and_due_soon(db_session, workspace, notifier):
    late = await make_task(db_session, workspace, "Late", due_date=NOW - timedelta(days=1))
    soon = await make_task(db_session, workspace, "Soon", due_date=NOW + timedelta(hours=6))
    later = await make_task(db_session, workspace, "Later", due_date=NOW + timedelta(days=5))
    finished = await make_task(
        db_session, workspace, "Finished", status="DONE", due_date=NOW - timedelta(days=2), completed_at=NOW
    )
    for task in (late, soon, later, finished):
        await follow(db_session, task, assignees=[workspace.bob])
    await follow(db_session, late, watchers=[workspace.carol])

    counts = await notifier.process(now=NOW)

    assert counts == {"overdue": 2, "due_soon": 1}
    result = await db_session.execute(
        select(Notification.notification_type, Notification.user_id, Notification.title)
    )
    rows = set(result.all())
    assert rows == {
        ("TASK_OVERDUE", workspace.bob.id, "Task overdue: Late"),
        ("TASK_OVERDUE", workspace.carol.id, "Task overdue: Late"),
        ("TASK_DUE_SOON", workspace.bob.id, "Task due soon: Soon"),
    }


@pytest.mark.asyncio
async def test_repeat_scans_do_not_duplicate(db_session, workspace, notifier):
    task = await make_task(db_session, workspace, "Nag", due_date=NOW - timedelta(hours=1))
    await follow(db_session, task, assignees=[workspace.bob])

    assert await notifier.process(now=NOW) == {"overdue": 1, "due_soon": 0}
    assert await notifier.process(now=NOW + timedelta(hours=1)) == {"overdue": 0, "due_soon": 0}

    # A new follower still gets reminded
    await follow(db_session, task, watchers=[workspace.carol])
    assert await notifier.process(now=NOW) == {"overdue": 1, "due_soon": 0}


@pytest.mark.asyncio
async def test_archived_and_unassigned_tasks_are_skipped(db_session, workspace, notifier):
    archived = await make_task(db_session, workspace, "Archived", due_date=NOW - timedelta(days=1))
    archived.is_archived = True
    await db_session.commit()
    await follow(db_session, archived, assignees=[workspace.bob])
    await make_task(db_session, workspace, "Nobody's", due_date=NOW - timedelta(days=1))

    assert await notifier.process(now=NOW) == {"overdue": 0, "due_soon": 0}
