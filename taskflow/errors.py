"""
TaskFlow - Error Taxonomy
=========================
Every domain failure is a TaskFlowError subclass carrying an HTTP status
and a machine-readable code. The API layer serializes them with to_dict(),
the CLI prints the message and exits 1.
"""

from typing import Any, Dict, List, Optional


class TaskFlowError(Exception):
    """Base class for all TaskFlow errors"""
    code = "taskflow_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class ValidationError(TaskFlowError):
    code = "validation_error"
    status_code = 422


class AuthenticationError(TaskFlowError):
    code = "authentication_failed"
    status_code = 401


class PermissionDeniedError(TaskFlowError):
    code = "permission_denied"
    status_code = 403


class NotFoundError(TaskFlowError):
    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, entity_id: str):
        super().__init__(
            f"{kind.capitalize()} {entity_id} does not exist or you do not have access to it.",
            kind=kind,
            id=entity_id,
        )


class DuplicateError(TaskFlowError):
    code = "duplicate"
    status_code = 409


class ConflictError(TaskFlowError):
    """Optimistic-lock failure; `current` is the latest stored version"""
    code = "version_conflict"
    status_code = 409

    def __init__(
        self,
        kind: str,
        entity_id: str,
        expected: int,
        current: Optional[Dict[str, Any]] = None
    ):
        actual = current.get("version") if current else None
        super().__init__(
            f"{kind.capitalize()} {entity_id} was changed by someone else "
            f"(your version {expected}, current version {actual}). "
            f"Reload it and reapply your changes.",
            kind=kind,
            id=entity_id,
            expected_version=expected,
            current=current,
        )


class TaskBlockedError(TaskFlowError):
    code = "task_blocked"
    status_code = 409

    def __init__(self, task_id: str, blocked_by: List[str]):
        super().__init__(
            f"Task {task_id} is blocked by unfinished tasks: {', '.join(blocked_by)}. "
            f"Finish those first or remove the dependency.",
            task_id=task_id,
            blocked_by=blocked_by,
        )


class StorageError(TaskFlowError):
    code = "storage_error"
    status_code = 500
