"""
TaskFlow - Schema Definition
============================
Projects, kanban tasks, comments, attachments and notifications.
Everything persisted lives inside one Workspace document.
"""

from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import date, datetime, timezone
from pydantic import BaseModel, Field
import uuid

from .errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class TaskStatus(str, Enum):
    """Kanban columns, left to right"""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


BOARD_COLUMNS = [TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, TaskStatus.DONE]


class TaskPriority(str, Enum):
    """Task priority levels"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class ProjectRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_STATUS_CHANGED = "task_status_changed"
    COMMENT_ADDED = "comment_added"
    MENTIONED = "mentioned"
    PROJECT_INVITED = "project_invited"


class ActivityAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    MOVED = "moved"
    ARCHIVED = "archived"
    RESTORED = "restored"
    COMMENTED = "commented"
    ATTACHED = "attached"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    email: str
    username: str                   # handle used for @mentions
    name: str
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


class Session(BaseModel):
    token_hash: str                 # sha256 of the bearer token
    user_id: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime


class ProjectMember(BaseModel):
    user_id: str
    role: ProjectRole = ProjectRole.MEMBER
    added_at: datetime = Field(default_factory=utcnow)


class Project(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    owner_id: str
    members: List[ProjectMember] = Field(default_factory=list)
    status: ProjectStatus = ProjectStatus.ACTIVE
    template: str = "blank"

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    archived_at: Optional[datetime] = None
    version: int = 1

    @property
    def is_archived(self) -> bool:
        return self.status == ProjectStatus.ARCHIVED

    def member_ids(self) -> List[str]:
        ids = [self.owner_id]
        ids.extend(m.user_id for m in self.members if m.user_id != self.owner_id)
        return ids


class Task(BaseModel):
    """A card on a project board"""
    id: str = Field(default_factory=new_id)
    project_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    position: int = 0               # index inside its status column

    assignee_id: Optional[str] = None
    created_by: str
    due_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)

    # Dependencies
    depends_on: List[str] = Field(default_factory=list)  # Task IDs

    estimated_minutes: Optional[int] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    version: int = 1

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def is_overdue(self, today: Optional[date] = None) -> bool:
        today = today or utcnow().date()
        return (
            self.due_date is not None
            and self.due_date < today
            and self.status != TaskStatus.DONE
        )


class Comment(BaseModel):
    id: str = Field(default_factory=new_id)
    task_id: str
    author_id: str
    body: str
    mentions: List[str] = Field(default_factory=list)  # User IDs
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None
    version: int = 1


class Attachment(BaseModel):
    id: str = Field(default_factory=new_id)
    task_id: str
    uploaded_by: str
    filename: str
    content_type: str = "application/octet-stream"
    size_bytes: int
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    type: NotificationType
    message: str
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    actor_id: Optional[str] = None
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class ActivityEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    project_id: str
    task_id: Optional[str] = None
    actor_id: Optional[str] = None
    action: ActivityAction
    detail: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Workspace(BaseModel):
    """Complete persisted state - THE SINGLE SOURCE OF TRUTH"""
    users: Dict[str, User] = Field(default_factory=dict)
    sessions: Dict[str, Session] = Field(default_factory=dict)
    projects: Dict[str, Project] = Field(default_factory=dict)
    tasks: Dict[str, Task] = Field(default_factory=dict)
    comments: Dict[str, Comment] = Field(default_factory=dict)
    attachments: Dict[str, Attachment] = Field(default_factory=dict)
    notifications: Dict[str, Notification] = Field(default_factory=dict)
    activity: List[ActivityEntry] = Field(default_factory=list)

    updated_at: datetime = Field(default_factory=utcnow)

    def project_tasks(self, project_id: str, include_archived: bool = False) -> List[Task]:
        return [
            t for t in self.tasks.values()
            if t.project_id == project_id and (include_archived or not t.is_archived)
        ]

    def column(self, project_id: str, status: TaskStatus) -> List[Task]:
        """Live tasks of one board column, ordered by position"""
        tasks = [t for t in self.project_tasks(project_id) if t.status == status]
        return sorted(tasks, key=lambda t: (t.position, t.created_at))


# ============================================================
# PROJECT TEMPLATES
# ============================================================

PROJECT_TEMPLATES: Dict[str, List[Dict[str, Any]]] = {
    "blank": [],
    "kanban": [
        {
            "key": "welcome",
            "title": "Welcome to your board",
            "description": "Drag cards between columns to track progress",
            "priority": "low",
        },
        {
            "key": "invite",
            "title": "Invite your team",
            "description": "Add members so you can assign them tasks",
        },
        {
            "key": "first_task",
            "title": "Create your first real task",
            "depends_on": ["welcome"],
        },
    ],
    "software": [
        {
            "key": "requirements",
            "title": "Gather requirements",
            "description": "Collect user stories and acceptance criteria",
            "priority": "high",
            "estimated_minutes": 240,
        },
        {
            "key": "design",
            "title": "Technical design",
            "description": "Data model, API surface and rollout plan",
            "depends_on": ["requirements"],
            "priority": "high",
            "estimated_minutes": 480,
        },
        {
            "key": "implement",
            "title": "Implementation",
            "depends_on": ["design"],
            "estimated_minutes": 2400,
        },
        {
            "key": "tests",
            "title": "Write tests",
            "depends_on": ["design"],
            "estimated_minutes": 720,
        },
        {
            "key": "review",
            "title": "Code review",
            "depends_on": ["implement", "tests"],
            "estimated_minutes": 120,
        },
        {
            "key": "release",
            "title": "Release",
            "description": "Deploy and announce",
            "depends_on": ["review"],
            "priority": "critical",
            "estimated_minutes": 60,
        },
    ],
    "marketing": [
        {
            "key": "brief",
            "title": "Campaign brief",
            "description": "Audience, message and budget",
            "priority": "high",
        },
        {
            "key": "content",
            "title": "Produce content",
            "depends_on": ["brief"],
        },
        {
            "key": "channels",
            "title": "Book channels",
            "depends_on": ["brief"],
        },
        {
            "key": "launch",
            "title": "Launch campaign",
            "depends_on": ["content", "channels"],
            "priority": "critical",
        },
        {
            "key": "retro",
            "title": "Results retrospective",
            "depends_on": ["launch"],
            "priority": "low",
        },
    ],
}


def build_template_tasks(
    project_id: str,
    template: str,
    created_by: str
) -> List[Task]:
    """Create the starter tasks of a project template"""
    if template not in PROJECT_TEMPLATES:
        raise ValidationError(
            f"Unknown project template '{template}'. "
            f"Choose one of: {', '.join(sorted(PROJECT_TEMPLATES))}.",
            field="template",
        )

    tasks: List[Task] = []
    task_id_map = {}  # key -> task_id

    for i, task_def in enumerate(PROJECT_TEMPLATES[template]):
        task = Task(
            project_id=project_id,
            title=task_def["title"],
            description=task_def.get("description"),
            priority=TaskPriority(task_def.get("priority", "medium")),
            estimated_minutes=task_def.get("estimated_minutes"),
            position=i,
            created_by=created_by,
        )
        task_id_map[task_def["key"]] = task.id
        tasks.append(task)

    # Resolve dependencies
    for task, task_def in zip(tasks, PROJECT_TEMPLATES[template]):
        task.depends_on = [task_id_map[dep] for dep in task_def.get("depends_on", [])]

    return tasks
