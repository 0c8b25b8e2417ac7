"""
TaskFlow - Project & Task Management Backend
============================================

Projects, kanban boards, comments, attachments and notifications with a
single-file JSON store as the source of truth.

Usage:
    from taskflow import WorkspaceManager

    manager = WorkspaceManager(data_dir=".taskflow")
    user = manager.register_user("ada@example.com", "ada", "Ada", "s3cretpass")
    project = manager.create_project(user.id, "Launch", template="software")

    # Drag a card across the board
    task = manager.list_tasks(user.id, project.id)[0]
    manager.move_task(user.id, task.id, "in_progress", expected_version=task.version)
    print(manager.get_status_report(project.id))
"""

from .schema import (
    Workspace,
    User,
    Project,
    ProjectMember,
    ProjectRole,
    ProjectStatus,
    Task,
    TaskStatus,
    TaskPriority,
    Comment,
    Attachment,
    Notification,
    NotificationType,
    ActivityEntry,
    ActivityAction,
    BOARD_COLUMNS,
    PROJECT_TEMPLATES,
    build_template_tasks
)

from .config import Settings
from .errors import (
    TaskFlowError,
    ValidationError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
    DuplicateError,
    ConflictError,
    TaskBlockedError,
    StorageError
)
from .manager import WorkspaceManager

__version__ = "1.0.0"
__all__ = [
    "WorkspaceManager",
    "Settings",
    "Workspace",
    "User",
    "Project",
    "ProjectMember",
    "ProjectRole",
    "ProjectStatus",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "Comment",
    "Attachment",
    "Notification",
    "NotificationType",
    "ActivityEntry",
    "ActivityAction",
    "BOARD_COLUMNS",
    "PROJECT_TEMPLATES",
    "build_template_tasks",
    "TaskFlowError",
    "ValidationError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "DuplicateError",
    "ConflictError",
    "TaskBlockedError",
    "StorageError"
]
