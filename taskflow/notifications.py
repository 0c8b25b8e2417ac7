"""
TaskFlow - Notification Fan-out
===============================
Decides who hears about a change. The manager calls these helpers while
holding its lock; they only mutate the workspace passed in.
"""

import logging
import re
from typing import Iterable, List, Optional

from .schema import Notification, NotificationType, Task, Workspace

logger = logging.getLogger("taskflow.notifications")

_MENTION_RE = re.compile(r"(?<![\w@])@([A-Za-z0-9_.-]{3,32})(?![A-Za-z0-9_-])")


def extract_mentions(body: str) -> List[str]:
    """Return @handles in order of first appearance"""
    seen: List[str] = []
    for match in _MENTION_RE.finditer(body or ""):
        handle = match.group(1).rstrip(".")
        if handle and handle not in seen:
            seen.append(handle)
    return seen


def task_watchers(task: Task) -> List[str]:
    watchers = [task.created_by]
    if task.assignee_id and task.assignee_id not in watchers:
        watchers.append(task.assignee_id)
    return watchers


def fan_out(
    workspace: Workspace,
    actor_id: Optional[str],
    type: NotificationType,
    message: str,
    recipients: Iterable[str],
    project_id: Optional[str] = None,
    task_id: Optional[str] = None
) -> List[Notification]:
    """Create one unread notification per distinct recipient, skipping the actor"""
    created: List[Notification] = []
    seen = set()

    for user_id in recipients:
        if not user_id or user_id == actor_id or user_id in seen:
            continue
        seen.add(user_id)
        if user_id not in workspace.users:
            logger.debug(f"Skipping notification for unknown user {user_id}")
            continue

        notification = Notification(
            user_id=user_id,
            type=type,
            message=message,
            project_id=project_id,
            task_id=task_id,
            actor_id=actor_id,
        )
        workspace.notifications[notification.id] = notification
        created.append(notification)

    if created:
        logger.debug(f"🔔 {type.value}: notified {len(created)} user(s)")
    return created
