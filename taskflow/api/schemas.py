"""Pydantic schemas for API request / response validation."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskflow.schema import TaskPriority, TaskStatus

# ── Request models ──────────────────────────────────────────────────────────


class RegisterIn(BaseModel):
    email: str
    username: str
    name: str
    password: str


class LoginIn(BaseModel):
    email: str
    password: str


class ProjectCreateIn(BaseModel):
    name: str
    description: Optional[str] = None
    template: str = "blank"


class ProjectUpdateIn(BaseModel):
    """PATCH body; `version` is the version the client last saw."""

    version: int
    name: Optional[str] = None
    description: Optional[str] = None


class MemberIn(BaseModel):
    user_id: str


class TaskCreateIn(BaseModel):
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[str] = None
    due_date: Optional[date] = None
    tags: list[str] = Field(default_factory=list)
    estimated_minutes: Optional[int] = None
    depends_on: list[str] = Field(default_factory=list)


class TaskUpdateIn(BaseModel):
    version: int
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None
    due_date: Optional[date] = None
    tags: Optional[list[str]] = None
    estimated_minutes: Optional[int] = None


class MoveIn(BaseModel):
    status: TaskStatus
    position: Optional[int] = None
    version: Optional[int] = None


class DependencyIn(BaseModel):
    depends_on_id: str


class CommentIn(BaseModel):
    body: str


class CommentUpdateIn(BaseModel):
    body: str
    version: int


class AttachmentIn(BaseModel):
    filename: str
    size_bytes: int
    content_type: str = "application/octet-stream"
    url: Optional[str] = None


# ── Response models ─────────────────────────────────────────────────────────


class HealthOut(BaseModel):
    status: str = "ok"
    version: str


class UserOut(BaseModel):
    id: str
    email: str
    username: str
    name: str
    created_at: datetime


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class UnreadCountOut(BaseModel):
    unread: int


class ReadAllOut(BaseModel):
    updated: int
