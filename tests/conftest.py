"""Shared pytest fixtures for the test suite.

Fixture overview
----------------
manager   : WorkspaceManager backed by a fresh temp directory
alice     : registered user who owns ``project``
bob       : registered user, member of ``project``
carol     : registered user, not a member of anything
project   : blank project owned by alice with bob as a member
"""

from __future__ import annotations

import pytest

from taskflow import auth
from taskflow.config import Settings
from taskflow.manager import WorkspaceManager
from taskflow.schema import Project, User


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Full-strength PBKDF2 makes every registration take ~0.3 s."""
    monkeypatch.setattr(auth, "PBKDF2_ITERATIONS", 1000)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=str(tmp_path / "workspace"), max_attachment_mb=1)


@pytest.fixture
def manager(settings: Settings) -> WorkspaceManager:
    return WorkspaceManager(settings=settings)


@pytest.fixture
def alice(manager: WorkspaceManager) -> User:
    return manager.register_user("alice@example.com", "alice", "Alice Liddell", "wonderland1")


@pytest.fixture
def bob(manager: WorkspaceManager) -> User:
    return manager.register_user("bob@example.com", "bob", "Bob Builder", "canwefixit2")


@pytest.fixture
def carol(manager: WorkspaceManager) -> User:
    return manager.register_user("carol@example.com", "carol", "Carol Danvers", "marvel1234")


@pytest.fixture
def project(manager: WorkspaceManager, alice: User, bob: User) -> Project:
    created = manager.create_project(alice.id, "Launch", description="Q3 launch")
    project = manager.add_member(alice.id, created.id, bob.id)
    manager.mark_all_read(bob.id)  # start every test with an empty inbox
    return project
