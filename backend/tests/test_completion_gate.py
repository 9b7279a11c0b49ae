"""Tests for the completion gate and task updates."""
from datetime import datetime

import pytest
from sqlalchemy import select

from conftest import follow, make_task
from projecthub.exceptions import BlockedByDependencyError, BlockedBySubtaskError, NotFoundError
from projecthub.models import (
    Activity,
    DependencyKind,
    Notification,
    Organization,
    Project,
    Task,
    TaskDependency,
    TaskList,
)
from projecthub.services.dependency import DependencyService


@pytest.mark.asyncio
async def test_upstream_dependency_blocks_completion(db_session, workspace, status_service):
    t1 = await make_task(db_session, workspace, "T1")
    t2 = await make_task(db_session, workspace, "T2", status="IN_PROGRESS")
    await DependencyService(db_session).create_dependency(t2.id, t1.id, DependencyKind.TASK)

    with pytest.raises(BlockedByDependencyError) as exc_info:
        await status_service.attempt_status_transition(t1.id, "DONE", workspace.alice.id)

    error = exc_info.value
    assert error.code == "BLOCKED_BY_DEPENDENCY"
    assert "T2" in error.message
    assert [t["title"] for t in error.blocking_tasks] == ["T2"]
    assert error.to_dict()["blocking_tasks"][0]["status"] == "IN_PROGRESS"

    await db_session.refresh(t1)
    assert t1.status == "TODO"
    assert t1.completed_at is None

    await status_service.attempt_status_transition(t2.id, "DONE", workspace.alice.id)
    done = await status_service.attempt_status_transition(t1.id, "DONE", workspace.alice.id)

    assert done.status == "DONE"
    assert done.completed_at is not None


@pytest.mark.asyncio
async def test_incomplete_subtask_blocks_completion(db_session, workspace, status_service):
    parent = await make_task(db_session, workspace, "Release")
    await make_task(db_session, workspace, "Write notes", parent=parent, status="DONE")
    await make_task(db_session, workspace, "Tag build", parent=parent)

    with pytest.raises(BlockedBySubtaskError) as exc_info:
        await status_service.attempt_status_transition(parent.id, "DONE", workspace.alice.id)

    assert exc_info.value.code == "BLOCKED_BY_SUBTASK"
    assert [t["title"] for t in exc_info.value.incomplete_subtasks] == ["Tag build"]


@pytest.mark.asyncio
async def test_only_direct_subtasks_are_checked(db_session, workspace, status_service):
    parent = await make_task(db_session, workspace, "Epic")
    child = await make_task(db_session, workspace, "Story", parent=parent, status="DONE")
    await make_task(db_session, workspace, "Sub-story", parent=child)

    done = await status_service.attempt_status_transition(parent.id, "DONE", workspace.alice.id)
    assert done.status == "DONE"


@pytest.mark.asyncio
async def test_dependencies_checked_before_subtasks(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Deploy")
    await make_task(db_session, workspace, "Smoke test", parent=task)
    upstream = await make_task(db_session, workspace, "Migrate")
    await DependencyService(db_session).create_dependency(upstream.id, task.id, DependencyKind.TASK)

    with pytest.raises(BlockedByDependencyError):
        await status_service.attempt_status_transition(task.id, "DONE", workspace.alice.id)


@pytest.mark.asyncio
async def test_non_done_transitions_are_unconditional(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Draft")
    await make_task(db_session, workspace, "Open child", parent=task)
    upstream = await make_task(db_session, workspace, "Upstream")
    await DependencyService(db_session).create_dependency(upstream.id, task.id, DependencyKind.TASK)

    for status in ("IN_PROGRESS", "IN_REVIEW", "BLOCKED", "TODO"):
        updated = await status_service.attempt_status_transition(task.id, status, workspace.alice.id)
        assert updated.status == status


@pytest.mark.asyncio
async def test_redone_task_keeps_completed_at(db_session, workspace, status_service):
    finished = datetime(2024, 3, 1, 9, 30)
    task = await make_task(db_session, workspace, "Archived", status="DONE", completed_at=finished)

    again = await status_service.attempt_status_transition(task.id, "DONE", workspace.alice.id)

    assert again.completed_at == finished


@pytest.mark.asyncio
async def test_leaving_done_clears_completed_at(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Reopen me", status="DONE", completed_at=datetime(2024, 3, 1))

    reopened = await status_service.attempt_status_transition(task.id, "IN_PROGRESS", workspace.alice.id)

    assert reopened.status == "IN_PROGRESS"
    assert reopened.completed_at is None


@pytest.mark.asyncio
async def test_completed_at_override_survives_leaving_done(db_session, workspace, status_service):
    finished = datetime(2023, 12, 31, 23, 0)
    task = await make_task(db_session, workspace, "Imported", status="DONE", completed_at=finished)

    updated = await status_service.attempt_status_transition(
        task.id, "IN_REVIEW", workspace.alice.id, completed_at=finished
    )

    assert updated.status == "IN_REVIEW"
    assert updated.completed_at == finished


@pytest.mark.asyncio
async def test_field_changes_write_activity(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Track me")

    await status_service.update_task(
        task.id,
        {"status": "IN_PROGRESS", "priority": "MEDIUM", "title": "Tracked"},
        workspace.bob.id,
    )

    result = await db_session.execute(select(Activity).where(Activity.task_id == task.id))
    activities = result.scalars().all()

    # Priority did not actually change and title is not tracked
    assert [a.action for a in activities] == ["STATUS_CHANGED"]
    assert activities[0].old_value == "TODO"
    assert activities[0].new_value == "IN_PROGRESS"
    assert activities[0].actor_id == workspace.bob.id


@pytest.mark.asyncio
async def test_unknown_fields_are_ignored(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Strict")

    updated = await status_service.update_task(
        task.id, {"project_id": workspace.organization.id, "position": 4}, workspace.alice.id
    )

    assert updated.project_id == workspace.project.id
    assert updated.position == 4
    assert updated.updated_by_id == workspace.alice.id


@pytest.mark.asyncio
async def test_status_change_notifies_followers_except_actor(
    db_session, workspace, status_service, realtime
):
    task = await make_task(db_session, workspace, "Review copy")
    await follow(db_session, task, assignees=[workspace.alice, workspace.bob], watchers=[workspace.carol])

    await status_service.attempt_status_transition(task.id, "IN_REVIEW", workspace.alice.id)

    result = await db_session.execute(
        select(Notification).where(Notification.notification_type == "TASK_STATUS_CHANGED")
    )
    recipients = {n.user_id for n in result.scalars().all()}
    assert recipients == {workspace.bob.id, workspace.carol.id}

    events = [event for _, event, _ in realtime.workspace_events]
    assert "task:updated" in events
    pushed_to = {user_id for user_id, event, _ in realtime.user_events if event == "notification:new"}
    assert pushed_to == {str(workspace.bob.id), str(workspace.carol.id)}


@pytest.mark.asyncio
async def test_null_for_required_fields_leaves_them_unchanged(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Keep me", status="IN_PROGRESS")

    updated = await status_service.update_task(
        task.id,
        {"status": None, "priority": None, "title": None, "position": None, "description": "notes"},
        workspace.alice.id,
    )

    assert updated.status == "IN_PROGRESS"
    assert updated.title == "Keep me"
    assert updated.priority == "MEDIUM"
    assert updated.position == 0
    assert updated.description == "notes"


@pytest.mark.asyncio
async def test_task_moves_between_lists_of_its_project(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Movable")
    done_list = TaskList(name="Done", project_id=workspace.project.id)
    db_session.add(done_list)
    await db_session.commit()

    updated = await status_service.update_task(task.id, {"list_id": done_list.id}, workspace.alice.id)

    assert updated.list_id == done_list.id


@pytest.mark.asyncio
async def test_task_cannot_move_to_list_of_other_project(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Stays home")
    side_project = Project(name="Side", organization_id=workspace.organization.id)
    db_session.add(side_project)
    await db_session.flush()
    side_list = TaskList(name="Side backlog", project_id=side_project.id)
    db_session.add(side_list)
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await status_service.update_task(task.id, {"list_id": side_list.id}, workspace.alice.id)


@pytest.mark.asyncio
async def test_task_cannot_move_to_list_of_other_organization(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Confidential")
    initech = Organization(name="Initech", slug="initech")
    db_session.add(initech)
    await db_session.flush()
    foreign = Project(name="Initech roadmap", organization_id=initech.id)
    db_session.add(foreign)
    await db_session.flush()
    foreign_list = TaskList(name="Initech backlog", project_id=foreign.id)
    db_session.add(foreign_list)
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await status_service.update_task(task.id, {"list_id": foreign_list.id}, workspace.alice.id)

    await db_session.rollback()
    refreshed = await db_session.get(Task, task.id)
    assert refreshed.list_id == workspace.task_list.id


@pytest.mark.asyncio
async def test_guest_cannot_update_task(db_session, workspace, status_service):
    task = await make_task(db_session, workspace, "Members only")

    with pytest.raises(NotFoundError):
        await status_service.attempt_status_transition(task.id, "IN_PROGRESS", workspace.guest.id)


@pytest.mark.asyncio
async def test_delete_task_removes_subtree_and_edges(db_session, workspace, status_service, realtime):
    upstream = await make_task(db_session, workspace, "Upstream")
    doomed = await make_task(db_session, workspace, "Doomed")
    child = await make_task(db_session, workspace, "Doomed child", parent=doomed)
    downstream = await make_task(db_session, workspace, "Downstream")

    service = DependencyService(db_session)
    await service.create_dependency(upstream.id, doomed.id, DependencyKind.TASK)
    await service.create_dependency(child.id, downstream.id, DependencyKind.TASK)

    await status_service.delete_task(doomed.id, workspace.alice.id)

    remaining = (await db_session.execute(select(Task.title))).scalars().all()
    assert sorted(remaining) == ["Downstream", "Upstream"]
    edges = (await db_session.execute(select(TaskDependency))).scalars().all()
    assert edges == []
    assert realtime.workspace_events[-1][1] == "task:deleted"

    # Downstream is no longer gated by the deleted child
    done = await status_service.attempt_status_transition(downstream.id, "DONE", workspace.alice.id)
    assert done.completed_at is not None
