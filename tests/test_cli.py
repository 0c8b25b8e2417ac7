"""
Tests for the command-line interface.
"""

from __future__ import annotations

import json

import pytest

from taskflow.cli import main
from taskflow.manager import WorkspaceManager


@pytest.fixture
def data_dir(tmp_path) -> str:
    return str(tmp_path / "cli")


@pytest.fixture
def owner_id(data_dir) -> str:
    manager = WorkspaceManager(data_dir=data_dir)
    return manager.register_user("owner@example.com", "owner", "Owner", "password1").id


def _run(capsys, *argv) -> tuple:
    code = main(list(argv))
    return code, capsys.readouterr().out


class TestCli:
    def test_no_command_prints_help(self, capsys) -> None:
        code, out = _run(capsys)
        assert code == 1
        assert "taskflow" in out

    def test_register_and_list_users(self, capsys, data_dir) -> None:
        code, out = _run(
            capsys, "register", "ada@example.com", "ada", "Ada", "--password", "password1",
            "--dir", data_dir,
        )
        assert code == 0
        assert "✅ Registered: ada" in out

        code, out = _run(capsys, "users", "--json", "--dir", data_dir)
        users = json.loads(out)
        assert [u["username"] for u in users] == ["ada"]
        assert "password_hash" not in users[0]

    def test_create_project_and_status(self, capsys, data_dir, owner_id) -> None:
        code, out = _run(
            capsys, "create", "Relaunch", "--owner", owner_id, "--template", "marketing",
            "--dir", data_dir,
        )
        assert code == 0
        assert "Tasks: 5" in out

        project_id = WorkspaceManager(data_dir=data_dir).list_projects(None)[0].id
        code, out = _run(capsys, "status", project_id, "--dir", data_dir)
        assert code == 0
        assert "📋 Relaunch" in out
        assert "Campaign brief" in out

        code, out = _run(capsys, "projects", "--json", "--dir", data_dir)
        assert json.loads(out)[0]["progress"] == "0%"

    def test_add_task_and_move(self, capsys, data_dir, owner_id) -> None:
        manager = WorkspaceManager(data_dir=data_dir)
        project = manager.create_project(owner_id, "Ops")

        code, out = _run(capsys, "add-task", project.id, "Rotate keys", "-p", "high", "--dir", data_dir)
        assert code == 0
        task_id = WorkspaceManager(data_dir=data_dir).list_tasks(None, project.id)[0].id

        code, out = _run(capsys, "move", task_id, "done", "--dir", data_dir)
        assert code == 0
        assert "done[0]" in out

        code, out = _run(capsys, "board", project.id, "--dir", data_dir)
        assert "(100%)" in out
        assert "Rotate keys (high)" in out

    def test_blocked_move_exits_nonzero(self, capsys, data_dir, owner_id) -> None:
        manager = WorkspaceManager(data_dir=data_dir)
        project = manager.create_project(owner_id, "Web", template="software")
        blocked = manager.list_tasks(None, project.id)[1]

        code, out = _run(capsys, "move", blocked.id, "in_progress", "--dir", data_dir)
        assert code == 1
        assert out.startswith("❌ Task")

    def test_unknown_project(self, capsys, data_dir) -> None:
        code, out = _run(capsys, "status", "missing", "--dir", data_dir)
        assert code == 1
        assert "does not exist" in out
