"""
Tests for task CRUD, kanban moves, optimistic locking and dependencies.
"""

from __future__ import annotations

from datetime import date

import pytest

from taskflow.errors import (
    ConflictError,
    NotFoundError,
    TaskBlockedError,
    ValidationError,
)
from taskflow.schema import TaskPriority, TaskStatus


def _titles(manager, project_id, status):
    return [t.title for t in manager.workspace.column(project_id, status)]


@pytest.fixture
def cards(manager, alice, project):
    """Three todo cards: a, b, c"""
    return [manager.create_task(alice.id, project.id, title) for title in ("a", "b", "c")]


class TestCreateTask:
    def test_tasks_append_to_column(self, manager, cards) -> None:
        assert [t.position for t in cards] == [0, 1, 2]
        assert all(t.status == TaskStatus.TODO and t.version == 1 for t in cards)

    def test_blank_title_rejected(self, manager, alice, project) -> None:
        with pytest.raises(ValidationError):
            manager.create_task(alice.id, project.id, "   ")

    def test_invalid_priority_lists_choices(self, manager, alice, project) -> None:
        with pytest.raises(ValidationError) as excinfo:
            manager.create_task(alice.id, project.id, "x", priority="urgent")
        assert "critical" in excinfo.value.message

    def test_assignee_must_be_member(self, manager, alice, carol, project) -> None:
        with pytest.raises(ValidationError) as excinfo:
            manager.create_task(alice.id, project.id, "x", assignee_id=carol.id)
        assert excinfo.value.details["field"] == "assignee_id"

    def test_non_member_cannot_see_project(self, manager, carol, project) -> None:
        with pytest.raises(NotFoundError):
            manager.create_task(carol.id, project.id, "sneaky")

    def test_created_done_sets_completed_at(self, manager, alice, project) -> None:
        task = manager.create_task(alice.id, project.id, "already", status="done")
        assert task.completed_at is not None


class TestMoveTask:
    def test_reorder_within_column(self, manager, alice, project, cards) -> None:
        a, b, c = cards
        manager.move_task(alice.id, c.id, "todo", position=0)
        assert _titles(manager, project.id, TaskStatus.TODO) == ["c", "a", "b"]
        assert [a.position, b.position, c.position] == [1, 2, 0]

    def test_move_across_columns_renumbers_both(self, manager, alice, project, cards) -> None:
        a, b, c = cards
        manager.move_task(alice.id, b.id, "in_progress")
        manager.move_task(alice.id, a.id, "in_progress", position=0)

        assert _titles(manager, project.id, TaskStatus.TODO) == ["c"]
        assert c.position == 0
        assert _titles(manager, project.id, TaskStatus.IN_PROGRESS) == ["a", "b"]
        assert [a.position, b.position] == [0, 1]

    def test_position_is_clamped(self, manager, alice, project, cards) -> None:
        a = cards[0]
        manager.move_task(alice.id, a.id, "todo", position=99)
        assert _titles(manager, project.id, TaskStatus.TODO) == ["b", "c", "a"]

        manager.move_task(alice.id, a.id, "todo", position=-5)
        assert _titles(manager, project.id, TaskStatus.TODO) == ["a", "b", "c"]

    def test_only_moved_task_version_changes(self, manager, alice, cards) -> None:
        a, b, c = cards
        manager.move_task(alice.id, c.id, "todo", position=0)
        assert c.version == 2
        assert a.version == 1 and b.version == 1

    def test_done_sets_and_clears_completed_at(self, manager, alice, cards) -> None:
        a = cards[0]
        manager.move_task(alice.id, a.id, "done")
        assert a.completed_at is not None

        manager.move_task(alice.id, a.id, "review")
        assert a.completed_at is None

    def test_stale_version_conflicts(self, manager, alice, bob, cards) -> None:
        a = cards[0]
        manager.move_task(alice.id, a.id, "in_progress", expected_version=1)

        with pytest.raises(ConflictError) as excinfo:
            manager.move_task(bob.id, a.id, "review", expected_version=1)
        assert excinfo.value.details["current"]["version"] == 2
        assert excinfo.value.details["current"]["status"] == "in_progress"
        assert a.status == TaskStatus.IN_PROGRESS


class TestUpdateTask:
    def test_partial_update_bumps_version(self, manager, alice, cards) -> None:
        a = cards[0]
        updated = manager.update_task(
            alice.id, a.id, 1, title="Renamed", priority="high", tags=["ui"]
        )
        assert updated.title == "Renamed"
        assert updated.priority == TaskPriority.HIGH
        assert updated.tags == ["ui"]
        assert updated.version == 2

    def test_concurrent_edit_conflict(self, manager, alice, bob, cards) -> None:
        a = cards[0]
        manager.update_task(alice.id, a.id, 1, title="Alice's edit")

        with pytest.raises(ConflictError) as excinfo:
            manager.update_task(bob.id, a.id, 1, title="Bob's edit")
        assert "Reload" in excinfo.value.message
        assert excinfo.value.details["current"]["title"] == "Alice's edit"
        assert a.title == "Alice's edit"

    def test_status_change_goes_to_end_of_column(self, manager, alice, project, cards) -> None:
        a, b, c = cards
        manager.move_task(alice.id, b.id, "done")
        manager.update_task(alice.id, a.id, a.version, status="done")

        assert _titles(manager, project.id, TaskStatus.DONE) == ["b", "a"]
        assert _titles(manager, project.id, TaskStatus.TODO) == ["c"]

    def test_unassign_with_explicit_none(self, manager, alice, bob, project) -> None:
        task = manager.create_task(alice.id, project.id, "x", assignee_id=bob.id)
        manager.update_task(alice.id, task.id, task.version, assignee_id=None)
        assert task.assignee_id is None

    def test_unknown_field_rejected(self, manager, alice, cards) -> None:
        with pytest.raises(ValidationError):
            manager.update_task(alice.id, cards[0].id, 1, project_id="elsewhere")


class TestArchiveTask:
    def test_archive_closes_gap_and_restore_appends(self, manager, alice, project, cards) -> None:
        a, b, c = cards
        manager.archive_task(alice.id, b.id)
        assert _titles(manager, project.id, TaskStatus.TODO) == ["a", "c"]
        assert c.position == 1

        manager.restore_task(alice.id, b.id)
        assert _titles(manager, project.id, TaskStatus.TODO) == ["a", "c", "b"]
        assert b.archived_at is None

    def test_archived_task_is_read_only(self, manager, alice, cards) -> None:
        a = cards[0]
        manager.archive_task(alice.id, a.id)
        with pytest.raises(ValidationError):
            manager.move_task(alice.id, a.id, "done")

    def test_listing_hides_archived_unless_asked(self, manager, alice, project, cards) -> None:
        manager.archive_task(alice.id, cards[0].id)
        assert len(manager.list_tasks(alice.id, project.id)) == 2
        assert len(manager.list_tasks(alice.id, project.id, include_archived=True)) == 3


class TestDependencies:
    def test_blocked_task_cannot_start(self, manager, alice, project) -> None:
        design = manager.create_task(alice.id, project.id, "design")
        build = manager.create_task(alice.id, project.id, "build", depends_on=[design.id])

        assert manager.blocked_by(build.id) == [design.id]
        with pytest.raises(TaskBlockedError) as excinfo:
            manager.move_task(alice.id, build.id, "in_progress")
        assert excinfo.value.details["blocked_by"] == [design.id]
        assert build.status == TaskStatus.TODO

        manager.move_task(alice.id, design.id, "done")
        manager.move_task(alice.id, build.id, "in_progress")
        assert build.status == TaskStatus.IN_PROGRESS

    def test_ready_tasks(self, manager, alice, project) -> None:
        design = manager.create_task(alice.id, project.id, "design")
        manager.create_task(alice.id, project.id, "build", depends_on=[design.id])
        assert [t.title for t in manager.ready_tasks(project.id)] == ["design"]

    def test_cycle_rejected(self, manager, alice, project) -> None:
        a = manager.create_task(alice.id, project.id, "a")
        b = manager.create_task(alice.id, project.id, "b", depends_on=[a.id])
        c = manager.create_task(alice.id, project.id, "c", depends_on=[b.id])

        with pytest.raises(ValidationError) as excinfo:
            manager.add_dependency(alice.id, a.id, c.id)
        assert "cycle" in excinfo.value.message

    def test_self_dependency_rejected(self, manager, alice, project) -> None:
        a = manager.create_task(alice.id, project.id, "a")
        with pytest.raises(ValidationError):
            manager.add_dependency(alice.id, a.id, a.id)

    def test_cross_project_dependency_rejected(self, manager, alice, project) -> None:
        other = manager.create_project(alice.id, "Other")
        foreign = manager.create_task(alice.id, other.id, "foreign")
        local = manager.create_task(alice.id, project.id, "local")
        with pytest.raises(ValidationError):
            manager.add_dependency(alice.id, local.id, foreign.id)

    def test_remove_dependency(self, manager, alice, project) -> None:
        a = manager.create_task(alice.id, project.id, "a")
        b = manager.create_task(alice.id, project.id, "b")
        manager.add_dependency(alice.id, b.id, a.id)
        manager.remove_dependency(alice.id, b.id, a.id)
        assert b.depends_on == []

        with pytest.raises(NotFoundError):
            manager.remove_dependency(alice.id, b.id, a.id)


class TestQueries:
    def test_filters_and_paging(self, manager, alice, bob, project) -> None:
        manager.create_task(alice.id, project.id, "Fix login", tags=["auth"], priority="high")
        manager.create_task(alice.id, project.id, "Write docs", assignee_id=bob.id)
        manager.create_task(alice.id, project.id, "Polish", description="Login page spacing")

        assert [t.title for t in manager.list_tasks(alice.id, project.id, query="LOGIN")] == [
            "Fix login", "Polish"
        ]
        assert [t.title for t in manager.list_tasks(alice.id, project.id, query="auth")] == [
            "Fix login"
        ]
        assert [t.title for t in manager.list_tasks(alice.id, project.id, priority="high")] == [
            "Fix login"
        ]
        assert [t.title for t in manager.list_tasks(alice.id, assignee_id=bob.id)] == [
            "Write docs"
        ]
        page = manager.list_tasks(alice.id, project.id, limit=1, offset=1)
        assert [t.title for t in page] == ["Write docs"]

    def test_list_orders_by_column_then_position(self, manager, alice, project, cards) -> None:
        manager.move_task(alice.id, cards[0].id, "done")
        manager.move_task(alice.id, cards[2].id, "in_progress")
        assert [t.title for t in manager.list_tasks(alice.id, project.id)] == ["b", "c", "a"]

    def test_my_tasks_soonest_due_first(self, manager, alice, bob, project) -> None:
        manager.create_task(alice.id, project.id, "no date", assignee_id=bob.id)
        manager.create_task(
            alice.id, project.id, "later", assignee_id=bob.id, due_date=date(2030, 5, 1)
        )
        manager.create_task(
            alice.id, project.id, "sooner", assignee_id=bob.id, due_date=date(2030, 1, 1)
        )
        done = manager.create_task(alice.id, project.id, "finished", assignee_id=bob.id)
        manager.move_task(alice.id, done.id, "done")

        assert [t.title for t in manager.my_tasks(bob.id)] == ["sooner", "later", "no date"]
        assert len(manager.my_tasks(bob.id, include_done=True)) == 4


class TestBoard:
    def test_board_shape(self, manager, alice, project) -> None:
        design = manager.create_task(alice.id, project.id, "design")
        manager.create_task(alice.id, project.id, "build", depends_on=[design.id])
        manager.move_task(alice.id, design.id, "done")

        board = manager.get_board(alice.id, project.id)
        assert [c["status"] for c in board["columns"]] == ["todo", "in_progress", "review", "done"]
        assert board["progress_pct"] == 50
        assert board["status_summary"] == {"todo": 1, "in_progress": 0, "review": 0, "done": 1}
        assert board["columns"][0]["tasks"][0]["blocked_by"] == []

    def test_progress_ignores_archived(self, manager, alice, project, cards) -> None:
        manager.move_task(alice.id, cards[0].id, "done")
        manager.archive_task(alice.id, cards[1].id)
        assert manager.project_progress(project.id) == 50

    def test_status_report(self, manager, alice, bob, project) -> None:
        design = manager.create_task(alice.id, project.id, "design", assignee_id=bob.id)
        manager.create_task(alice.id, project.id, "build", depends_on=[design.id])

        report = manager.get_status_report(project.id)
        assert "📋 Launch" in report
        assert "0%" in report
        assert "design @bob" in report
        assert f"(blocked by: ['{design.id}'])" in report


class TestProgress:
    def test_percentage_uses_integer_arithmetic(self, manager, alice, project) -> None:
        tasks = [manager.create_task(alice.id, project.id, f"t{i}") for i in range(50)]
        for task in tasks[:29]:
            manager.move_task(alice.id, task.id, "done")

        assert manager.project_progress(project.id) == 58
        assert manager.get_board(alice.id, project.id)["progress_pct"] == 58
