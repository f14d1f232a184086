"""
Task Board Errors

Structured error taxonomy shared by the service and the board client.
Each error carries an HTTP status code so the API layer and the client
can translate in both directions without guessing.
"""

from typing import Any, Dict, Optional, Type


class TaskBoardError(Exception):
    """Base error with structured details."""
    status_code = 500
    default_code = "TASKBOARD_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class AuthenticationError(TaskBoardError):
    """No valid actor identity. The user must re-authenticate."""
    status_code = 401
    default_code = "UNAUTHENTICATED"


class AuthorizationError(TaskBoardError):
    """Valid actor without permission for the operation, field or transition."""
    status_code = 403
    default_code = "FORBIDDEN"


class TransitionError(AuthorizationError):
    """Status change not present in the transition table."""
    default_code = "INVALID_TRANSITION"


class ValidationError(TaskBoardError):
    """Malformed or missing input."""
    status_code = 400
    default_code = "VALIDATION_FAILED"


class NotFoundError(TaskBoardError):
    status_code = 404
    default_code = "NOT_FOUND"


class ProjectNotFoundError(NotFoundError):
    default_code = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        super().__init__(
            message=f"Project '{project_id}' not found",
            details={"project_id": project_id},
        )


class TaskNotFoundError(NotFoundError):
    default_code = "TASK_NOT_FOUND"

    def __init__(self, project_id: str, task_id: str):
        super().__init__(
            message=f"Task '{task_id}' not found in project '{project_id}'",
            details={"project_id": project_id, "task_id": task_id},
        )


class ConflictError(TaskBoardError):
    """Write based on a stale version of the task."""
    status_code = 409
    default_code = "VERSION_CONFLICT"


class TransientIOError(TaskBoardError):
    """Store or network unavailable. Safe for the user to retry manually."""
    status_code = 503
    default_code = "TRANSIENT_IO"


# Status code -> error class, used when rebuilding errors from HTTP responses
ERRORS_BY_STATUS: Dict[int, Type[TaskBoardError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    503: TransientIOError,
}


def error_from_response(status_code: int, body: Dict[str, Any]) -> TaskBoardError:
    """Rebuild a typed error from an error response body."""
    error_cls = ERRORS_BY_STATUS.get(status_code, TaskBoardError)
    if status_code == 403 and body.get("code") == TransitionError.default_code:
        error_cls = TransitionError
    message = body.get("message") or body.get("detail") or f"HTTP {status_code}"
    if not isinstance(message, str):
        message = str(message)
    return error_cls(message, details=body.get("details") or {}, code=body.get("code"))
