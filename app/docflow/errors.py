"""
Workflow error taxonomy.

Every error is raised before any mutation is persisted, except
PersistenceError, which means the save itself failed and the transition
must be treated as not applied. The HTTP layer maps `status_code` onto the
response; the engine itself never formats responses.
"""
from __future__ import annotations


class WorkflowError(Exception):
    status_code = 400
    kind = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(WorkflowError):
    status_code = 404
    kind = "not_found"


class InvalidStateError(WorkflowError):
    status_code = 409
    kind = "invalid_state"


class PermissionDeniedError(WorkflowError):
    status_code = 403
    kind = "permission_denied"


class UnknownActionError(WorkflowError):
    status_code = 400
    kind = "unknown_action"


class PersistenceError(WorkflowError):
    status_code = 409
    kind = "persistence_error"
