"""API route handlers.

Handlers are plain ``def`` functions so FastAPI runs them on its thread
pool; the shared WorkspaceManager serializes access with its own lock.
Domain errors propagate to the TaskFlowError handler installed in
``app.py``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from taskflow import __version__
from taskflow.api.schemas import (
    AttachmentIn,
    CommentIn,
    CommentUpdateIn,
    DependencyIn,
    HealthOut,
    LoginIn,
    MemberIn,
    MoveIn,
    ProjectCreateIn,
    ProjectUpdateIn,
    ReadAllOut,
    RegisterIn,
    TaskCreateIn,
    TaskUpdateIn,
    TokenOut,
    UnreadCountOut,
    UserOut,
)
from taskflow.errors import AuthenticationError
from taskflow.manager import WorkspaceManager
from taskflow.schema import (
    ActivityEntry,
    Attachment,
    Comment,
    Notification,
    Project,
    Task,
    TaskPriority,
    TaskStatus,
    User,
)

logger = logging.getLogger("taskflow.api")

router = APIRouter()

# ── Dependencies ───────────────────────────────────────────────────────────


def get_manager(request: Request) -> WorkspaceManager:
    return request.app.state.manager


def bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Sign in to continue: send 'Authorization: Bearer <token>'.")
    return authorization[len("bearer "):].strip()


def current_user(
    token: str = Depends(bearer_token),
    manager: WorkspaceManager = Depends(get_manager),
) -> User:
    return manager.authenticate(token)


def _user_out(user: User) -> UserOut:
    return UserOut.model_validate(user.model_dump())


# ── Health & auth ──────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthOut, include_in_schema=False)
def health_check() -> HealthOut:
    """Liveness probe (suppressed from access log via log filter)."""
    return HealthOut(version=__version__)


@router.post("/auth/register", response_model=UserOut, status_code=201)
def register(body: RegisterIn, manager: WorkspaceManager = Depends(get_manager)) -> UserOut:
    user = manager.register_user(body.email, body.username, body.name, body.password)
    return _user_out(user)


@router.post("/auth/login", response_model=TokenOut)
def login(body: LoginIn, manager: WorkspaceManager = Depends(get_manager)) -> TokenOut:
    token, user = manager.login(body.email, body.password)
    return TokenOut(access_token=token, user=_user_out(user))


@router.post("/auth/logout", status_code=204)
def logout(
    token: str = Depends(bearer_token),
    manager: WorkspaceManager = Depends(get_manager),
) -> None:
    manager.logout(token)


@router.get("/users/me", response_model=UserOut)
def me(user: User = Depends(current_user)) -> UserOut:
    return _user_out(user)


@router.get("/users/me/tasks", response_model=list[Task])
def my_tasks(
    include_done: bool = False,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> list[Task]:
    return manager.my_tasks(user.id, include_done=include_done)


# ── Projects ───────────────────────────────────────────────────────────────


@router.get("/projects", response_model=list[Project])
def list_projects(
    include_archived: bool = False,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> list[Project]:
    return manager.list_projects(user.id, include_archived=include_archived)


@router.post("/projects", response_model=Project, status_code=201)
def create_project(
    body: ProjectCreateIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Project:
    return manager.create_project(user.id, body.name, body.description, body.template)


@router.get("/projects/{project_id}", response_model=Project)
def get_project(
    project_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Project:
    return manager.get_project(user.id, project_id)


@router.patch("/projects/{project_id}", response_model=Project)
def update_project(
    project_id: str,
    body: ProjectUpdateIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Project:
    changes = body.model_dump(exclude_unset=True)
    version = changes.pop("version")
    return manager.update_project(user.id, project_id, version, **changes)


@router.delete("/projects/{project_id}", response_model=Project)
def archive_project(
    project_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Project:
    return manager.archive_project(user.id, project_id)


@router.post("/projects/{project_id}/restore", response_model=Project)
def restore_project(
    project_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Project:
    return manager.restore_project(user.id, project_id)


@router.post("/projects/{project_id}/members", response_model=Project)
def add_member(
    project_id: str,
    body: MemberIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Project:
    return manager.add_member(user.id, project_id, body.user_id)


@router.delete("/projects/{project_id}/members/{member_id}", response_model=Project)
def remove_member(
    project_id: str,
    member_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Project:
    return manager.remove_member(user.id, project_id, member_id)


@router.get("/projects/{project_id}/board")
def get_board(
    project_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> dict[str, Any]:
    return manager.get_board(user.id, project_id)


@router.get("/projects/{project_id}/activity", response_model=list[ActivityEntry])
def list_activity(
    project_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> list[ActivityEntry]:
    return manager.list_activity(user.id, project_id, limit=limit)


# ── Tasks ──────────────────────────────────────────────────────────────────


@router.get("/projects/{project_id}/tasks", response_model=list[Task])
def list_tasks(
    project_id: str,
    status: Optional[TaskStatus] = None,
    assignee_id: Optional[str] = None,
    priority: Optional[TaskPriority] = None,
    q: Optional[str] = None,
    include_archived: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> list[Task]:
    return manager.list_tasks(
        user.id,
        project_id=project_id,
        status=status,
        assignee_id=assignee_id,
        priority=priority,
        query=q,
        include_archived=include_archived,
        limit=limit,
        offset=offset,
    )


@router.post("/projects/{project_id}/tasks", response_model=Task, status_code=201)
def create_task(
    project_id: str,
    body: TaskCreateIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    return manager.create_task(user.id, project_id, **body.model_dump())


@router.get("/tasks/{task_id}", response_model=Task)
def get_task(
    task_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    return manager.get_task(user.id, task_id)


@router.patch("/tasks/{task_id}", response_model=Task)
def update_task(
    task_id: str,
    body: TaskUpdateIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    changes = body.model_dump(exclude_unset=True)
    version = changes.pop("version")
    return manager.update_task(user.id, task_id, version, **changes)


@router.delete("/tasks/{task_id}", response_model=Task)
def archive_task(
    task_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    return manager.archive_task(user.id, task_id)


@router.post("/tasks/{task_id}/restore", response_model=Task)
def restore_task(
    task_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    return manager.restore_task(user.id, task_id)


@router.post("/tasks/{task_id}/move", response_model=Task)
def move_task(
    task_id: str,
    body: MoveIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    return manager.move_task(
        user.id, task_id, body.status, position=body.position, expected_version=body.version
    )


@router.post("/tasks/{task_id}/dependencies", response_model=Task)
def add_dependency(
    task_id: str,
    body: DependencyIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    return manager.add_dependency(user.id, task_id, body.depends_on_id)


@router.delete("/tasks/{task_id}/dependencies/{depends_on_id}", response_model=Task)
def remove_dependency(
    task_id: str,
    depends_on_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Task:
    return manager.remove_dependency(user.id, task_id, depends_on_id)


# ── Comments & attachments ─────────────────────────────────────────────────


@router.get("/tasks/{task_id}/comments", response_model=list[Comment])
def list_comments(
    task_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> list[Comment]:
    return manager.list_comments(user.id, task_id)


@router.post("/tasks/{task_id}/comments", response_model=Comment, status_code=201)
def add_comment(
    task_id: str,
    body: CommentIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Comment:
    return manager.add_comment(user.id, task_id, body.body)


@router.patch("/comments/{comment_id}", response_model=Comment)
def edit_comment(
    comment_id: str,
    body: CommentUpdateIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Comment:
    return manager.edit_comment(user.id, comment_id, body.body, expected_version=body.version)


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> None:
    manager.delete_comment(user.id, comment_id)


@router.get("/tasks/{task_id}/attachments", response_model=list[Attachment])
def list_attachments(
    task_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> list[Attachment]:
    return manager.list_attachments(user.id, task_id)


@router.post("/tasks/{task_id}/attachments", response_model=Attachment, status_code=201)
def add_attachment(
    task_id: str,
    body: AttachmentIn,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Attachment:
    return manager.add_attachment(
        user.id,
        task_id,
        body.filename,
        body.size_bytes,
        content_type=body.content_type,
        url=body.url,
    )


@router.delete("/attachments/{attachment_id}", status_code=204)
def remove_attachment(
    attachment_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> None:
    manager.remove_attachment(user.id, attachment_id)


# ── Notifications ──────────────────────────────────────────────────────────


@router.get("/notifications", response_model=list[Notification])
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> list[Notification]:
    return manager.list_notifications(user.id, unread_only=unread_only, limit=limit)


@router.get("/notifications/unread-count", response_model=UnreadCountOut)
def unread_count(
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> UnreadCountOut:
    return UnreadCountOut(unread=manager.unread_count(user.id))


@router.post("/notifications/read-all", response_model=ReadAllOut)
def mark_all_read(
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> ReadAllOut:
    return ReadAllOut(updated=manager.mark_all_read(user.id))


@router.post("/notifications/{notification_id}/read", response_model=Notification)
def mark_read(
    notification_id: str,
    user: User = Depends(current_user),
    manager: WorkspaceManager = Depends(get_manager),
) -> Notification:
    return manager.mark_read(user.id, notification_id)
