from __future__ import annotations


class WorkflowError(Exception):
    """Base class for errors raised by workflow, queue and notification services.

    ``status_code`` is the HTTP status the API answers with and ``category``
    tells the client which message style to show.
    """

    status_code = 400
    code = "workflow_error"
    category = "error"
    default_message = "The operation could not be completed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message, "category": self.category}


class NotFoundError(WorkflowError):
    status_code = 404
    code = "not_found"
    category = "not_found"
    default_message = "Record not found"


class InvalidStateError(WorkflowError):
    status_code = 409
    code = "invalid_state"
    category = "invalid_state"
    default_message = "This action is not allowed in the record's current status"


class PermissionDeniedError(WorkflowError):
    status_code = 403
    code = "permission_denied"
    category = "permission"
    default_message = "You do not have permission to perform this action"


class ValidationError(WorkflowError):
    status_code = 400
    code = "validation_error"
    category = "validation"
    default_message = "Invalid or missing data"


class ConflictError(WorkflowError):
    status_code = 409
    code = "conflict"
    category = "conflict"
    default_message = "This record changed, please reload"
