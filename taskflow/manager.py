"""
TaskFlow - Workspace Manager
============================
Handles persistence, state transitions, permissions and notification
fan-out for projects, boards, comments and attachments.
File-based storage is the source of truth; an optional Supabase-style
client receives a backup snapshot after every save.
"""

import json
import os
import threading
from datetime import date, timedelta
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple
import logging

from .auth import (
    generate_token, hash_password, hash_token, validate_email,
    validate_password, validate_username, verify_password
)
from .config import Settings
from .errors import (
    AuthenticationError, ConflictError, DuplicateError, NotFoundError,
    PermissionDeniedError, StorageError, TaskBlockedError, ValidationError
)
from .notifications import extract_mentions, fan_out, task_watchers
from .schema import (
    ActivityAction, ActivityEntry, Attachment, BOARD_COLUMNS, Comment,
    Notification, NotificationType, Project, ProjectMember, ProjectRole,
    ProjectStatus, Session, Task, TaskPriority, TaskStatus, User, Workspace,
    build_template_tasks, utcnow
)

logger = logging.getLogger("taskflow")

STORE_FILENAME = "workspace.json"

# Columns a task may only enter once all of its dependencies are done
GATED_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, TaskStatus.DONE)

TASK_FIELDS = {
    "title", "description", "priority", "assignee_id", "due_date",
    "tags", "estimated_minutes", "status"
}
PROJECT_FIELDS = {"name", "description"}

PRIORITY_ORDER = [TaskPriority.CRITICAL, TaskPriority.HIGH, TaskPriority.MEDIUM, TaskPriority.LOW]


class WorkspaceManager:
    """
    SINGLE SOURCE OF TRUTH Workspace Manager

    Primary storage: {data_dir}/workspace.json
    Backup storage: Supabase (optional)

    Every public operation takes the acting user's id. ``actor_id=None``
    is a trusted local caller (the CLI) and skips membership checks.
    """

    def __init__(
        self,
        data_dir: Optional[str] = None,
        settings: Optional[Settings] = None,
        backup_client: Optional[Any] = None
    ):
        self.settings = settings or Settings()
        self.data_dir = Path(data_dir or self.settings.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.backup = backup_client
        self._lock = threading.RLock()
        self.workspace = self._load()

    # ========================================
    # PERSISTENCE OPERATIONS
    # ========================================

    @property
    def store_path(self) -> Path:
        return self.data_dir / STORE_FILENAME

    def save(self) -> None:
        """Write the workspace atomically (SINGLE SOURCE OF TRUTH)"""
        with self._lock:
            self.workspace.updated_at = utcnow()
            payload = self.workspace.model_dump(mode="json")

            tmp_path = self.store_path.with_suffix(".json.tmp")
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_path, self.store_path)
            except OSError as e:
                tmp_path.unlink(missing_ok=True)
                # roll back to the last state that reached disk
                self.workspace = self._load()
                raise StorageError(f"Could not write {self.store_path}: {e}")

            logger.debug(f"💾 Saved workspace ({len(self.workspace.tasks)} tasks)")

            # Backup to Supabase if available
            if self.backup:
                try:
                    self._sync_backup(payload)
                except Exception as e:
                    logger.warning(f"Workspace backup failed: {e}")

    def reload(self) -> Workspace:
        with self._lock:
            self.workspace = self._load()
            return self.workspace

    def _load(self) -> Workspace:
        if not self.store_path.exists():
            logger.info(f"🆕 No workspace at {self.store_path}, starting empty")
            return Workspace()

        try:
            with open(self.store_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            workspace = Workspace.model_validate(data)
        except (OSError, ValueError) as e:
            raise StorageError(
                f"Workspace file {self.store_path} is unreadable or corrupt: {e}. "
                f"Restore it from a backup or move it aside to start fresh."
            )

        logger.info(
            f"📂 Loaded workspace: {len(workspace.projects)} projects, "
            f"{len(workspace.tasks)} tasks"
        )
        return workspace

    def _sync_backup(self, payload: Dict[str, Any]) -> None:
        """Backup workspace to Supabase (secondary storage)"""
        # This is backup only - file system is SSOT
        self.backup.table("taskflow_workspace").upsert({
            "id": "workspace",
            "data": payload,
            "updated_at": utcnow().isoformat()
        }).execute()

    # ========================================
    # USERS & SESSIONS
    # ========================================

    def register_user(self, email: str, username: str, name: str, password: str) -> User:
        email = (email or "").strip().lower()
        username = (username or "").strip()
        name = (name or "").strip()

        if not validate_email(email):
            raise ValidationError(
                "Enter a valid email address, like name@example.com.", field="email"
            )
        if not validate_username(username):
            raise ValidationError(
                "Usernames are 3-32 characters: letters, digits, '_', '.' or '-'.",
                field="username",
            )
        if not name:
            raise ValidationError("Name cannot be empty.", field="name")
        if not validate_password(password):
            raise ValidationError(
                "Passwords need at least 8 characters, including a letter and a digit.",
                field="password",
            )

        with self._lock:
            if self._find_user_by_email(email):
                raise DuplicateError(
                    f"An account for {email} already exists. Sign in instead.", field="email"
                )
            if self._find_user_by_username(username):
                raise DuplicateError(
                    f"The username '{username}' is taken. Pick another one.", field="username"
                )

            user = User(
                email=email,
                username=username,
                name=name,
                password_hash=hash_password(password),
            )
            self.workspace.users[user.id] = user
            self.save()

        logger.info(f"👤 Registered user: {user.username} ({user.id})")
        return user

    def login(self, email: str, password: str) -> Tuple[str, User]:
        """Authenticate and open a session; returns (bearer token, user)"""
        with self._lock:
            user = self._find_user_by_email((email or "").strip().lower())
            if not user or not verify_password(password or "", user.password_hash):
                raise AuthenticationError("Incorrect email or password.")

            self._purge_expired_sessions()
            token = generate_token()
            session = Session(
                token_hash=hash_token(token),
                user_id=user.id,
                expires_at=utcnow() + timedelta(hours=self.settings.session_ttl_hours),
            )
            self.workspace.sessions[session.token_hash] = session
            self.save()

        logger.info(f"🔑 Login: {user.username}")
        return token, user

    def logout(self, token: str) -> None:
        with self._lock:
            if not self.workspace.sessions.pop(hash_token(token or ""), None):
                raise AuthenticationError("Your session is not valid. Sign in again.")
            self.save()

    def authenticate(self, token: str) -> User:
        """Resolve a bearer token to its user"""
        with self._lock:
            key = hash_token(token or "")
            session = self.workspace.sessions.get(key)
            if not session:
                raise AuthenticationError("Your session is not valid. Sign in again.")

            if session.expires_at <= utcnow():
                del self.workspace.sessions[key]
                self.save()
                raise AuthenticationError("Your session has expired. Sign in again.")

            user = self.workspace.users.get(session.user_id)
            if not user:
                raise AuthenticationError("Your session is not valid. Sign in again.")
            return user

    def get_user(self, user_id: str) -> User:
        with self._lock:
            return self._require_user(user_id)

    def list_users(self) -> List[User]:
        with self._lock:
            return sorted(self.workspace.users.values(), key=lambda u: u.username.lower())

    # ========================================
    # PROJECT OPERATIONS
    # ========================================

    def create_project(
        self,
        actor_id: str,
        name: str,
        description: Optional[str] = None,
        template: str = "blank"
    ) -> Project:
        """Create a project owned by actor_id, seeded from a template"""
        name = self._clean_text(name, "name", 120)

        with self._lock:
            self._require_user(actor_id)

            project = Project(
                name=name,
                description=description,
                owner_id=actor_id,
                members=[ProjectMember(user_id=actor_id, role=ProjectRole.OWNER)],
                template=template,
            )
            tasks = build_template_tasks(project.id, template, created_by=actor_id)

            self.workspace.projects[project.id] = project
            for task in tasks:
                self.workspace.tasks[task.id] = task

            self._log_activity(project.id, ActivityAction.CREATED, actor_id, detail=name)
            self.save()

        logger.info(f"🚀 Created project: {project.name} ({project.id}, {len(tasks)} tasks)")
        return project

    def get_project(self, actor_id: Optional[str], project_id: str) -> Project:
        with self._lock:
            return self._get_project(project_id, actor_id)

    def list_projects(
        self,
        actor_id: Optional[str],
        include_archived: bool = False
    ) -> List[Project]:
        """List projects the actor belongs to, most recently updated first"""
        with self._lock:
            projects = [
                p for p in self.workspace.projects.values()
                if (actor_id is None or actor_id in p.member_ids())
                and (include_archived or not p.is_archived)
            ]
        return sorted(projects, key=lambda p: p.updated_at, reverse=True)

    def update_project(
        self,
        actor_id: Optional[str],
        project_id: str,
        expected_version: Optional[int],
        **changes: Any
    ) -> Project:
        unknown = set(changes) - PROJECT_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update project field(s): {', '.join(sorted(unknown))}.",
                fields=sorted(unknown),
            )

        with self._lock:
            project = self._get_project(project_id, actor_id)
            self._require_active(project)
            self._check_version("project", project, expected_version)

            if "name" in changes:
                project.name = self._clean_text(changes["name"], "name", 120)
            if "description" in changes:
                project.description = changes["description"]

            self._touch(project)
            self._log_activity(project.id, ActivityAction.UPDATED, actor_id)
            self.save()

        logger.info(f"✏️ Updated project: {project.name} (v{project.version})")
        return project

    def archive_project(self, actor_id: Optional[str], project_id: str) -> Project:
        """Soft-delete a project; its board becomes read-only"""
        with self._lock:
            project = self._get_project(project_id, actor_id)
            self._require_owner(project, actor_id, "archive this project")
            if project.is_archived:
                return project

            project.status = ProjectStatus.ARCHIVED
            project.archived_at = utcnow()
            self._touch(project)
            self._log_activity(project.id, ActivityAction.ARCHIVED, actor_id)
            self.save()

        logger.info(f"🗄️ Archived project: {project.name}")
        return project

    def restore_project(self, actor_id: Optional[str], project_id: str) -> Project:
        with self._lock:
            project = self._get_project(project_id, actor_id)
            self._require_owner(project, actor_id, "restore this project")
            if not project.is_archived:
                return project

            project.status = ProjectStatus.ACTIVE
            project.archived_at = None
            self._touch(project)
            self._log_activity(project.id, ActivityAction.RESTORED, actor_id)
            self.save()

        logger.info(f"♻️ Restored project: {project.name}")
        return project

    def add_member(self, actor_id: Optional[str], project_id: str, user_id: str) -> Project:
        with self._lock:
            project = self._get_project(project_id, actor_id)
            self._require_owner(project, actor_id, "add members")
            self._require_active(project)
            user = self._require_user(user_id)

            if user_id in project.member_ids():
                raise DuplicateError(
                    f"{user.username} is already a member of {project.name}.", user_id=user_id
                )

            project.members.append(ProjectMember(user_id=user_id))
            self._touch(project)
            self._log_activity(
                project.id, ActivityAction.MEMBER_ADDED, actor_id, detail=user.username
            )
            fan_out(
                self.workspace, actor_id, NotificationType.PROJECT_INVITED,
                f"You were added to {project.name}",
                [user_id], project_id=project.id,
            )
            self.save()

        logger.info(f"➕ Added {user.username} to {project.name}")
        return project

    def remove_member(self, actor_id: Optional[str], project_id: str, user_id: str) -> Project:
        """Remove a member and unassign them from the project's open tasks"""
        with self._lock:
            project = self._get_project(project_id, actor_id)
            self._require_owner(project, actor_id, "remove members")
            if user_id == project.owner_id:
                raise ValidationError("The project owner cannot be removed.", user_id=user_id)
            if user_id not in project.member_ids():
                raise NotFoundError("member", user_id)

            project.members = [m for m in project.members if m.user_id != user_id]
            self._touch(project)

            for task in self.workspace.project_tasks(project.id):
                if task.assignee_id == user_id and task.status != TaskStatus.DONE:
                    task.assignee_id = None
                    self._touch(task)

            user = self.workspace.users.get(user_id)
            self._log_activity(
                project.id, ActivityAction.MEMBER_REMOVED, actor_id,
                detail=user.username if user else user_id,
            )
            self.save()

        logger.info(f"➖ Removed {user_id} from {project.name}")
        return project

    # ========================================
    # TASK OPERATIONS
    # ========================================

    def create_task(
        self,
        actor_id: Optional[str],
        project_id: str,
        title: str,
        description: Optional[str] = None,
        status: Any = TaskStatus.TODO,
        priority: Any = TaskPriority.MEDIUM,
        assignee_id: Optional[str] = None,
        due_date: Optional[date] = None,
        tags: Optional[List[str]] = None,
        estimated_minutes: Optional[int] = None,
        depends_on: Optional[List[str]] = None
    ) -> Task:
        """Create a task at the bottom of its column"""
        title = self._clean_text(title, "title", 200)
        status = self._coerce(TaskStatus, status, "status")
        priority = self._coerce(TaskPriority, priority, "priority")
        self._check_estimate(estimated_minutes)

        with self._lock:
            project = self._get_project(project_id, actor_id)
            self._require_active(project)
            self._check_assignee(project, assignee_id)

            depends_on = list(dict.fromkeys(depends_on or []))
            for dep_id in depends_on:
                dep = self.workspace.tasks.get(dep_id)
                if not dep or dep.project_id != project.id:
                    raise ValidationError(
                        f"Dependency {dep_id} is not a task in this project.",
                        field="depends_on",
                    )

            task = Task(
                project_id=project.id,
                title=title,
                description=description,
                status=status,
                priority=priority,
                assignee_id=assignee_id,
                created_by=actor_id or project.owner_id,
                due_date=due_date,
                tags=tags or [],
                estimated_minutes=estimated_minutes,
                depends_on=depends_on,
                position=len(self.workspace.column(project.id, status)),
            )

            if status in GATED_STATUSES:
                blocking = self._blocking_dependencies(task)
                if blocking:
                    raise TaskBlockedError(task.id, blocking)
            if status == TaskStatus.DONE:
                task.completed_at = utcnow()

            self.workspace.tasks[task.id] = task
            self._log_activity(
                project.id, ActivityAction.CREATED, actor_id, task_id=task.id, detail=title
            )
            if assignee_id:
                fan_out(
                    self.workspace, actor_id, NotificationType.TASK_ASSIGNED,
                    f"You were assigned '{task.title}'",
                    [assignee_id], project_id=project.id, task_id=task.id,
                )
            self.save()

        logger.info(f"📝 Created task: {task.title} ({task.id})")
        return task

    def get_task(self, actor_id: Optional[str], task_id: str) -> Task:
        with self._lock:
            return self._get_task(task_id, actor_id)

    def list_tasks(
        self,
        actor_id: Optional[str],
        project_id: Optional[str] = None,
        status: Any = None,
        assignee_id: Optional[str] = None,
        priority: Any = None,
        query: Optional[str] = None,
        include_archived: bool = False,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Task]:
        """Filter tasks; ordered by board column, then position"""
        status = self._coerce(TaskStatus, status, "status") if status else None
        priority = self._coerce(TaskPriority, priority, "priority") if priority else None
        needle = query.strip().lower() if query else None

        with self._lock:
            if project_id:
                project_ids = {self._get_project(project_id, actor_id).id}
            else:
                project_ids = {p.id for p in self.list_projects(actor_id, include_archived=True)}

            tasks = []
            for task in self.workspace.tasks.values():
                if task.project_id not in project_ids:
                    continue
                if task.is_archived and not include_archived:
                    continue
                if status and task.status != status:
                    continue
                if priority and task.priority != priority:
                    continue
                if assignee_id and task.assignee_id != assignee_id:
                    continue
                if needle and not self._matches(task, needle):
                    continue
                tasks.append(task)

        tasks.sort(key=lambda t: (BOARD_COLUMNS.index(t.status), t.position, t.created_at))
        tasks = tasks[max(offset, 0):]
        if limit is not None:
            tasks = tasks[:max(limit, 0)]
        return tasks

    def update_task(
        self,
        actor_id: Optional[str],
        task_id: str,
        expected_version: Optional[int],
        **changes: Any
    ) -> Task:
        """Apply a partial update; a status change moves the card to the end of its new column"""
        unknown = set(changes) - TASK_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update task field(s): {', '.join(sorted(unknown))}.",
                fields=sorted(unknown),
            )

        with self._lock:
            task = self._get_task(task_id, actor_id)
            project = self.workspace.projects[task.project_id]
            self._require_active(project)
            self._require_live(task)
            self._check_version("task", task, expected_version)

            # Validate everything before mutating
            updates: Dict[str, Any] = {}
            if "title" in changes:
                updates["title"] = self._clean_text(changes["title"], "title", 200)
            if "description" in changes:
                updates["description"] = changes["description"]
            if "priority" in changes:
                updates["priority"] = self._coerce(TaskPriority, changes["priority"], "priority")
            if "assignee_id" in changes:
                self._check_assignee(project, changes["assignee_id"])
                updates["assignee_id"] = changes["assignee_id"]
            if "due_date" in changes:
                updates["due_date"] = changes["due_date"]
            if "tags" in changes:
                updates["tags"] = list(changes["tags"] or [])
            if "estimated_minutes" in changes:
                self._check_estimate(changes["estimated_minutes"])
                updates["estimated_minutes"] = changes["estimated_minutes"]

            new_status = None
            if changes.get("status") is not None:
                new_status = self._coerce(TaskStatus, changes["status"], "status")
                if new_status == task.status:
                    new_status = None
                elif new_status in GATED_STATUSES:
                    blocking = self._blocking_dependencies(task)
                    if blocking:
                        raise TaskBlockedError(task.id, blocking)

            old_assignee = task.assignee_id
            old_status = task.status
            for field, value in updates.items():
                setattr(task, field, value)
            if new_status is not None:
                self._place(task, new_status, None)

            self._touch(task)
            self._log_activity(
                project.id, ActivityAction.UPDATED, actor_id, task_id=task.id,
                detail=", ".join(sorted(changes)) or None,
            )
            if task.assignee_id and task.assignee_id != old_assignee:
                fan_out(
                    self.workspace, actor_id, NotificationType.TASK_ASSIGNED,
                    f"You were assigned '{task.title}'",
                    [task.assignee_id], project_id=project.id, task_id=task.id,
                )
            if new_status is not None:
                self._notify_status_change(task, old_status, actor_id)
            self.save()

        logger.info(f"✏️ Updated task: {task.title} (v{task.version})")
        return task

    def move_task(
        self,
        actor_id: Optional[str],
        task_id: str,
        status: Any,
        position: Optional[int] = None,
        expected_version: Optional[int] = None
    ) -> Task:
        """Kanban drag-and-drop: place a card in a column at a position"""
        status = self._coerce(TaskStatus, status, "status")

        with self._lock:
            task = self._get_task(task_id, actor_id)
            project = self.workspace.projects[task.project_id]
            self._require_active(project)
            self._require_live(task)
            self._check_version("task", task, expected_version)

            old_status = task.status
            if status != old_status and status in GATED_STATUSES:
                blocking = self._blocking_dependencies(task)
                if blocking:
                    logger.warning(f"⛔ Task {task_id} blocked by: {blocking}")
                    raise TaskBlockedError(task.id, blocking)

            self._place(task, status, position)
            self._touch(task)
            self._log_activity(
                project.id, ActivityAction.MOVED, actor_id, task_id=task.id,
                detail=f"{old_status.value} -> {status.value} @{task.position}",
            )
            if status != old_status:
                self._notify_status_change(task, old_status, actor_id)
            self.save()

        logger.info(f"▶️ Moved task: {task.title} to {status.value}[{task.position}]")
        return task

    def archive_task(self, actor_id: Optional[str], task_id: str) -> Task:
        """Soft-delete a task; its column closes the gap"""
        with self._lock:
            task = self._get_task(task_id, actor_id)
            self._require_active(self.workspace.projects[task.project_id])
            if task.is_archived:
                return task

            task.archived_at = utcnow()
            self._renumber(self.workspace.column(task.project_id, task.status))
            self._touch(task)
            self._log_activity(task.project_id, ActivityAction.ARCHIVED, actor_id, task_id=task.id)
            self.save()

        logger.info(f"🗄️ Archived task: {task.title}")
        return task

    def restore_task(self, actor_id: Optional[str], task_id: str) -> Task:
        """Bring an archived task back at the bottom of its column"""
        with self._lock:
            task = self._get_task(task_id, actor_id)
            self._require_active(self.workspace.projects[task.project_id])
            if not task.is_archived:
                return task

            task.position = len(self.workspace.column(task.project_id, task.status))
            task.archived_at = None
            self._touch(task)
            self._log_activity(task.project_id, ActivityAction.RESTORED, actor_id, task_id=task.id)
            self.save()

        logger.info(f"♻️ Restored task: {task.title}")
        return task

    def add_dependency(self, actor_id: Optional[str], task_id: str, depends_on_id: str) -> Task:
        with self._lock:
            task = self._get_task(task_id, actor_id)
            self._require_active(self.workspace.projects[task.project_id])
            dep = self.workspace.tasks.get(depends_on_id)

            if depends_on_id == task_id:
                raise ValidationError("A task cannot depend on itself.", field="depends_on_id")
            if not dep or dep.project_id != task.project_id:
                raise ValidationError(
                    f"Dependency {depends_on_id} is not a task in this project.",
                    field="depends_on_id",
                )
            if depends_on_id in task.depends_on:
                return task
            if self._reaches(depends_on_id, task_id):
                raise ValidationError(
                    f"Making {task_id} depend on {depends_on_id} would create a cycle.",
                    field="depends_on_id",
                )

            task.depends_on.append(depends_on_id)
            self._touch(task)
            self._log_activity(
                task.project_id, ActivityAction.UPDATED, actor_id, task_id=task.id,
                detail=f"depends on {depends_on_id}",
            )
            self.save()

        logger.info(f"🔗 {task_id} now depends on {depends_on_id}")
        return task

    def remove_dependency(self, actor_id: Optional[str], task_id: str, depends_on_id: str) -> Task:
        with self._lock:
            task = self._get_task(task_id, actor_id)
            self._require_active(self.workspace.projects[task.project_id])
            if depends_on_id not in task.depends_on:
                raise NotFoundError("dependency", depends_on_id)

            task.depends_on.remove(depends_on_id)
            self._touch(task)
            self.save()

        logger.info(f"🔓 {task_id} no longer depends on {depends_on_id}")
        return task

    def blocked_by(self, task_id: str) -> List[str]:
        """IDs of unfinished dependencies"""
        with self._lock:
            task = self.workspace.tasks.get(task_id)
            if not task:
                raise NotFoundError("task", task_id)
            return self._blocking_dependencies(task)

    def ready_tasks(self, project_id: str) -> List[Task]:
        """Todo tasks with no blocking dependencies"""
        with self._lock:
            return [
                t for t in self.workspace.column(project_id, TaskStatus.TODO)
                if not self._blocking_dependencies(t)
            ]

    def my_tasks(self, actor_id: str, include_done: bool = False) -> List[Task]:
        """Tasks assigned to the actor, soonest due first"""
        with self._lock:
            visible = {p.id for p in self.list_projects(actor_id)}
            tasks = [
                t for t in self.workspace.tasks.values()
                if t.assignee_id == actor_id
                and t.project_id in visible
                and not t.is_archived
                and (include_done or t.status != TaskStatus.DONE)
            ]
        return sorted(
            tasks,
            key=lambda t: (
                t.due_date is None,
                t.due_date or date.max,
                PRIORITY_ORDER.index(t.priority),
            ),
        )

    # ========================================
    # COMMENTS
    # ========================================

    def add_comment(self, actor_id: str, task_id: str, body: str) -> Comment:
        body = self._clean_text(body, "body", 10000)

        with self._lock:
            author = self._require_user(actor_id)
            task = self._get_task(task_id, actor_id)
            project = self.workspace.projects[task.project_id]
            self._require_active(project)
            self._require_live(task)

            mentions = self._resolve_mentions(project, body)
            comment = Comment(task_id=task.id, author_id=actor_id, body=body, mentions=mentions)
            self.workspace.comments[comment.id] = comment

            self._log_activity(project.id, ActivityAction.COMMENTED, actor_id, task_id=task.id)
            fan_out(
                self.workspace, actor_id, NotificationType.COMMENT_ADDED,
                f"{author.name} commented on '{task.title}'",
                [w for w in task_watchers(task) if w not in mentions],
                project_id=project.id, task_id=task.id,
            )
            fan_out(
                self.workspace, actor_id, NotificationType.MENTIONED,
                f"{author.name} mentioned you on '{task.title}'",
                mentions, project_id=project.id, task_id=task.id,
            )
            self.save()

        logger.info(f"💬 Comment on {task.id} by {author.username}")
        return comment

    def list_comments(self, actor_id: Optional[str], task_id: str) -> List[Comment]:
        with self._lock:
            task = self._get_task(task_id, actor_id)
            comments = [
                c for c in self.workspace.comments.values()
                if c.task_id == task.id and c.deleted_at is None
            ]
        return sorted(comments, key=lambda c: c.created_at)

    def edit_comment(
        self,
        actor_id: str,
        comment_id: str,
        body: str,
        expected_version: Optional[int] = None
    ) -> Comment:
        body = self._clean_text(body, "body", 10000)

        with self._lock:
            comment = self._get_comment(comment_id, actor_id)
            if comment.author_id != actor_id:
                raise PermissionDeniedError("Only the author can edit this comment.")
            self._check_version("comment", comment, expected_version)

            task = self.workspace.tasks[comment.task_id]
            project = self.workspace.projects[task.project_id]
            self._require_active(project)

            mentions = self._resolve_mentions(project, body)
            new_mentions = [m for m in mentions if m not in comment.mentions]
            comment.body = body
            comment.mentions = mentions
            self._touch(comment)

            author = self.workspace.users[actor_id]
            fan_out(
                self.workspace, actor_id, NotificationType.MENTIONED,
                f"{author.name} mentioned you on '{task.title}'",
                new_mentions, project_id=project.id, task_id=task.id,
            )
            self.save()

        return comment

    def delete_comment(self, actor_id: Optional[str], comment_id: str) -> None:
        with self._lock:
            comment = self._get_comment(comment_id, actor_id)
            project = self.workspace.projects[self.workspace.tasks[comment.task_id].project_id]
            if actor_id is not None and actor_id not in (comment.author_id, project.owner_id):
                raise PermissionDeniedError(
                    "Only the author or the project owner can delete this comment."
                )

            comment.deleted_at = utcnow()
            self._touch(comment)
            self.save()

        logger.info(f"🗑️ Deleted comment {comment_id}")

    # ========================================
    # ATTACHMENTS
    # ========================================

    def add_attachment(
        self,
        actor_id: str,
        task_id: str,
        filename: str,
        size_bytes: int,
        content_type: str = "application/octet-stream",
        url: Optional[str] = None
    ) -> Attachment:
        """Record attachment metadata; file bytes live wherever `url` points"""
        filename = self._clean_text(filename, "filename", 255)
        if "/" in filename or "\\" in filename:
            raise ValidationError(
                "File names cannot contain path separators.", field="filename"
            )
        limit = self.settings.max_attachment_bytes
        if size_bytes <= 0:
            raise ValidationError("Attachments cannot be empty.", field="size_bytes")
        if size_bytes > limit:
            raise ValidationError(
                f"{filename} is too large ({size_bytes} bytes). "
                f"The limit is {self.settings.max_attachment_mb} MB.",
                field="size_bytes",
                limit=limit,
            )

        with self._lock:
            self._require_user(actor_id)
            task = self._get_task(task_id, actor_id)
            self._require_active(self.workspace.projects[task.project_id])
            self._require_live(task)

            attachment = Attachment(
                task_id=task.id,
                uploaded_by=actor_id,
                filename=filename,
                content_type=content_type,
                size_bytes=size_bytes,
                url=url,
            )
            self.workspace.attachments[attachment.id] = attachment
            self._log_activity(
                task.project_id, ActivityAction.ATTACHED, actor_id, task_id=task.id,
                detail=filename,
            )
            self.save()

        logger.info(f"📎 Attached {filename} to {task.id}")
        return attachment

    def list_attachments(self, actor_id: Optional[str], task_id: str) -> List[Attachment]:
        with self._lock:
            task = self._get_task(task_id, actor_id)
            attachments = [a for a in self.workspace.attachments.values() if a.task_id == task.id]
        return sorted(attachments, key=lambda a: a.created_at)

    def remove_attachment(self, actor_id: Optional[str], attachment_id: str) -> None:
        with self._lock:
            attachment = self.workspace.attachments.get(attachment_id)
            if not attachment:
                raise NotFoundError("attachment", attachment_id)
            task = self._get_task(attachment.task_id, actor_id)
            project = self.workspace.projects[task.project_id]
            if actor_id is not None and actor_id not in (attachment.uploaded_by, project.owner_id):
                raise PermissionDeniedError(
                    "Only the uploader or the project owner can remove this attachment."
                )

            del self.workspace.attachments[attachment_id]
            self.save()

        logger.info(f"🗑️ Removed attachment {attachment.filename}")

    # ========================================
    # NOTIFICATIONS
    # ========================================

    def list_notifications(
        self,
        actor_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None
    ) -> List[Notification]:
        with self._lock:
            items = [
                n for n in self.workspace.notifications.values()
                if n.user_id == actor_id and (not unread_only or not n.read)
            ]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items[:limit] if limit is not None else items

    def unread_count(self, actor_id: str) -> int:
        with self._lock:
            return sum(
                1 for n in self.workspace.notifications.values()
                if n.user_id == actor_id and not n.read
            )

    def mark_read(self, actor_id: str, notification_id: str) -> Notification:
        with self._lock:
            notification = self.workspace.notifications.get(notification_id)
            if not notification or notification.user_id != actor_id:
                raise NotFoundError("notification", notification_id)
            if not notification.read:
                notification.read = True
                self.save()
            return notification

    def mark_all_read(self, actor_id: str) -> int:
        with self._lock:
            updated = 0
            for notification in self.workspace.notifications.values():
                if notification.user_id == actor_id and not notification.read:
                    notification.read = True
                    updated += 1
            if updated:
                self.save()
        return updated

    # ========================================
    # BOARD & REPORTING
    # ========================================

    def get_board(self, actor_id: Optional[str], project_id: str) -> Dict[str, Any]:
        """Kanban board: one entry per column, cards in position order"""
        with self._lock:
            project = self._get_project(project_id, actor_id)
            columns = []
            for status in BOARD_COLUMNS:
                cards = []
                for task in self.workspace.column(project.id, status):
                    card = task.model_dump(mode="json")
                    card["blocked_by"] = self._blocking_dependencies(task)
                    cards.append(card)
                columns.append({"status": status.value, "tasks": cards})

            return {
                "project": project.model_dump(mode="json"),
                "columns": columns,
                "progress_pct": self.project_progress(project.id),
                "status_summary": self.status_summary(project.id),
            }

    def project_progress(self, project_id: str) -> int:
        with self._lock:
            tasks = self.workspace.project_tasks(project_id)
            if not tasks:
                return 0
            completed = sum(1 for t in tasks if t.status == TaskStatus.DONE)
            return completed * 100 // len(tasks)

    def status_summary(self, project_id: str) -> Dict[str, int]:
        with self._lock:
            summary = {status.value: 0 for status in TaskStatus}
            for task in self.workspace.project_tasks(project_id):
                summary[task.status.value] += 1
            return summary

    def list_activity(
        self,
        actor_id: Optional[str],
        project_id: str,
        limit: int = 50
    ) -> List[ActivityEntry]:
        with self._lock:
            project = self._get_project(project_id, actor_id)
            entries = [e for e in self.workspace.activity if e.project_id == project.id]
        entries.reverse()
        return entries[:max(limit, 0)]

    def get_status_report(self, project_id: str) -> str:
        """Generate human-readable status report"""
        with self._lock:
            project = self._get_project(project_id, None)
            pct = self.project_progress(project.id)

            lines = [
                f"📋 {project.name}" + (" (archived)" if project.is_archived else ""),
                f"Progress: {'█' * (pct // 10)}{'░' * (10 - pct // 10)} {pct}%",
                f"Status: {self.status_summary(project.id)}",
            ]

            status_icons = {
                TaskStatus.TODO: "⬜",
                TaskStatus.IN_PROGRESS: "🔵",
                TaskStatus.REVIEW: "🟣",
                TaskStatus.DONE: "✅",
            }

            today = utcnow().date()
            for status in BOARD_COLUMNS:
                column = self.workspace.column(project.id, status)
                lines.append("")
                lines.append(f"{status.value.upper()} ({len(column)}):")
                for task in column:
                    icon = status_icons[task.status]
                    blocking = self._blocking_dependencies(task)
                    if blocking and task.status == TaskStatus.TODO:
                        icon = "🟡"
                    extra = ""
                    if task.assignee_id and task.assignee_id in self.workspace.users:
                        extra += f" @{self.workspace.users[task.assignee_id].username}"
                    if task.is_overdue(today):
                        extra += f" ⚠️ overdue {task.due_date.isoformat()}"
                    if blocking:
                        extra += f" (blocked by: {blocking})"
                    lines.append(f"  {icon} [{task.id}] {task.title}{extra}")

            return "\n".join(lines)

    # ========================================
    # HELPER METHODS
    # ========================================

    def _find_user_by_email(self, email: str) -> Optional[User]:
        for user in self.workspace.users.values():
            if user.email == email:
                return user
        return None

    def _find_user_by_username(self, username: str) -> Optional[User]:
        for user in self.workspace.users.values():
            if user.username.lower() == username.lower():
                return user
        return None

    def _purge_expired_sessions(self) -> None:
        now = utcnow()
        expired = [k for k, s in self.workspace.sessions.items() if s.expires_at <= now]
        for key in expired:
            del self.workspace.sessions[key]

    def _require_user(self, user_id: Optional[str]) -> User:
        user = self.workspace.users.get(user_id) if user_id else None
        if not user:
            raise NotFoundError("user", str(user_id))
        return user

    def _get_project(self, project_id: str, actor_id: Optional[str]) -> Project:
        """Non-members get the same error as for a missing project"""
        project = self.workspace.projects.get(project_id)
        if not project or (actor_id is not None and actor_id not in project.member_ids()):
            raise NotFoundError("project", project_id)
        return project

    def _get_task(self, task_id: str, actor_id: Optional[str]) -> Task:
        task = self.workspace.tasks.get(task_id)
        if not task:
            raise NotFoundError("task", task_id)
        project = self.workspace.projects.get(task.project_id)
        if not project or (actor_id is not None and actor_id not in project.member_ids()):
            raise NotFoundError("task", task_id)
        return task

    def _get_comment(self, comment_id: str, actor_id: Optional[str]) -> Comment:
        comment = self.workspace.comments.get(comment_id)
        if not comment or comment.deleted_at is not None:
            raise NotFoundError("comment", comment_id)
        try:
            self._get_task(comment.task_id, actor_id)
        except NotFoundError:
            raise NotFoundError("comment", comment_id)
        return comment

    def _require_owner(self, project: Project, actor_id: Optional[str], action: str) -> None:
        if actor_id is not None and actor_id != project.owner_id:
            raise PermissionDeniedError(f"Only the project owner can {action}.")

    def _require_active(self, project: Project) -> None:
        if project.is_archived:
            raise ValidationError(
                f"Project {project.name} is archived and read-only. Restore it to make changes.",
                project_id=project.id,
            )

    def _require_live(self, task: Task) -> None:
        if task.is_archived:
            raise ValidationError(
                f"Task {task.id} is archived. Restore it to make changes.", task_id=task.id
            )

    def _check_assignee(self, project: Project, assignee_id: Optional[str]) -> None:
        if assignee_id and assignee_id not in project.member_ids():
            raise ValidationError(
                f"User {assignee_id} is not a member of {project.name}. Add them to the project first.",
                field="assignee_id",
            )

    def _check_estimate(self, estimated_minutes: Optional[int]) -> None:
        if estimated_minutes is not None and estimated_minutes < 0:
            raise ValidationError("Estimates cannot be negative.", field="estimated_minutes")

    def _check_version(self, kind: str, entity: Any, expected: Optional[int]) -> None:
        """Optimistic locking: reject writes based on a stale version"""
        if expected is not None and expected != entity.version:
            logger.warning(
                f"⚔️ Version conflict on {kind} {entity.id}: "
                f"expected v{expected}, current v{entity.version}"
            )
            raise ConflictError(kind, entity.id, expected, entity.model_dump(mode="json"))

    def _touch(self, entity: Any) -> None:
        entity.version += 1
        entity.updated_at = utcnow()

    def _blocking_dependencies(self, task: Task) -> List[str]:
        """Get list of incomplete dependencies"""
        blocking = []
        for dep_id in task.depends_on:
            dep_task = self.workspace.tasks.get(dep_id)
            if dep_task and not dep_task.is_archived and dep_task.status != TaskStatus.DONE:
                blocking.append(dep_id)
        return blocking

    def _reaches(self, start_id: str, target_id: str) -> bool:
        """True if target_id is reachable from start_id along depends_on edges"""
        stack = [start_id]
        seen = set()
        while stack:
            current = stack.pop()
            if current == target_id:
                return True
            if current in seen:
                continue
            seen.add(current)
            task = self.workspace.tasks.get(current)
            if task:
                stack.extend(task.depends_on)
        return False

    def _place(self, task: Task, status: TaskStatus, position: Optional[int]) -> None:
        """Move a card into a column slot and renumber the affected columns"""
        old_status = task.status
        source = [
            t for t in self.workspace.column(task.project_id, old_status) if t.id != task.id
        ]
        target = source if status == old_status else self.workspace.column(task.project_id, status)

        if position is None or position > len(target):
            position = len(target)
        position = max(position, 0)
        target.insert(position, task)

        task.status = status
        self._renumber(target)
        if status != old_status:
            self._renumber(source)

        if status == TaskStatus.DONE and old_status != TaskStatus.DONE:
            task.completed_at = utcnow()
        elif status != TaskStatus.DONE:
            task.completed_at = None

    def _renumber(self, column: List[Task]) -> None:
        for i, task in enumerate(column):
            task.position = i

    def _notify_status_change(self, task: Task, old_status: TaskStatus, actor_id: Optional[str]) -> None:
        fan_out(
            self.workspace, actor_id, NotificationType.TASK_STATUS_CHANGED,
            f"'{task.title}' moved from {old_status.value} to {task.status.value}",
            task_watchers(task), project_id=task.project_id, task_id=task.id,
        )

    def _resolve_mentions(self, project: Project, body: str) -> List[str]:
        members = set(project.member_ids())
        mentioned = []
        for handle in extract_mentions(body):
            user = self._find_user_by_username(handle)
            if user and user.id in members and user.id not in mentioned:
                mentioned.append(user.id)
        return mentioned

    def _log_activity(
        self,
        project_id: str,
        action: ActivityAction,
        actor_id: Optional[str],
        task_id: Optional[str] = None,
        detail: Optional[str] = None
    ) -> None:
        self.workspace.activity.append(ActivityEntry(
            project_id=project_id,
            task_id=task_id,
            actor_id=actor_id,
            action=action,
            detail=detail,
        ))

    @staticmethod
    def _matches(task: Task, needle: str) -> bool:
        haystack = [task.title, task.description or ""] + task.tags
        return any(needle in text.lower() for text in haystack)

    @staticmethod
    def _clean_text(value: Optional[str], field: str, max_length: int) -> str:
        value = (value or "").strip()
        if not value:
            raise ValidationError(f"{field.capitalize()} cannot be empty.", field=field)
        if len(value) > max_length:
            raise ValidationError(
                f"{field.capitalize()} is too long ({len(value)} characters, max {max_length}).",
                field=field,
            )
        return value

    @staticmethod
    def _coerce(enum_cls: Any, value: Any, field: str) -> Any:
        try:
            return enum_cls(value)
        except ValueError:
            choices = ", ".join(e.value for e in enum_cls)
            raise ValidationError(
                f"Invalid {field} '{value}'. Choose one of: {choices}.", field=field
            )
