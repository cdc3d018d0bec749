from fastapi import status


class TaskboardError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "taskboard_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(TaskboardError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidTarget(TaskboardError):
    code = "invalid_target"


class DuplicateKey(TaskboardError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_key"


class HasTasks(TaskboardError):
    code = "has_tasks"


class ProtectedDefault(TaskboardError):
    code = "protected_default"


class ValidationError(TaskboardError):
    code = "validation_error"


class PartialMismatch(TaskboardError):
    code = "partial_mismatch"

    def __init__(self, message: str, unknown_ids=None):
        super().__init__(message)
        self.unknown_ids = list(unknown_ids or [])


class AccessDenied(TaskboardError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "access_denied"
