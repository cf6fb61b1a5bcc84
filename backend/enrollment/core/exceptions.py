"""
Domain errors raised by the enrollment core.

Every error carries a stable snake_case ``code`` so an HTTP collaborator can
map it to a status without string matching:

  not found   -> ClassNotFound, ApplicationNotFound
  conflict    -> AlreadyApplied, CapacityExceeded, DuplicateApplication
  validation  -> ClassAlreadyStarted, InvalidRequest, InvalidClassSchedule
  forbidden   -> PermissionDenied
  transient   -> TransientConflict (LockTimeout is retried internally)
"""

from typing import Any, Optional


class EnrollmentError(Exception):
    """Base exception for enrollment operations.

    Attributes:
        code: Stable machine-readable error code.
        message: Human-readable error description.
        details: Extra context (ids, counts) for logs and responses.
    """

    code = "enrollment_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message


class NotFoundError(EnrollmentError):
    code = "not_found"


class ConflictError(EnrollmentError):
    code = "conflict"


class InvalidRequest(EnrollmentError):
    code = "validation_error"


class ClassNotFound(NotFoundError):
    code = "class_not_found"

    def __init__(self, class_id: Any) -> None:
        super().__init__(f"Class {class_id} not found", class_id=str(class_id))


class ApplicationNotFound(NotFoundError):
    code = "application_not_found"

    def __init__(self, class_id: Any, user_id: Any) -> None:
        super().__init__(
            "Application not found",
            class_id=str(class_id),
            user_id=str(user_id),
        )


class ClassAlreadyStarted(InvalidRequest):
    code = "class_already_started"

    def __init__(self, class_id: Any) -> None:
        super().__init__(f"Class {class_id} has already started", class_id=str(class_id))


class InvalidClassSchedule(InvalidRequest):
    code = "invalid_class_schedule"


class AlreadyApplied(ConflictError):
    code = "already_applied"

    def __init__(self, class_id: Any, user_id: Any) -> None:
        super().__init__(
            "You have already applied to this class",
            class_id=str(class_id),
            user_id=str(user_id),
        )


class CapacityExceeded(ConflictError):
    code = "capacity_exceeded"

    def __init__(self, class_id: Any, capacity: int) -> None:
        super().__init__(
            "Class is fully booked. No more applications can be accepted.",
            class_id=str(class_id),
            capacity=capacity,
        )


class DuplicateApplication(ConflictError):
    """Unique (user_id, class_id) violation reported by the ledger."""

    code = "duplicate_application"

    def __init__(self, class_id: Any, user_id: Any, original_error: Optional[Exception] = None) -> None:
        super().__init__(
            "An application for this user and class already exists",
            class_id=str(class_id),
            user_id=str(user_id),
        )
        self.original_error = original_error


class PermissionDenied(EnrollmentError):
    code = "forbidden"


class TransientConflict(EnrollmentError):
    """Retries exhausted on lock timeouts or serialization conflicts."""

    code = "transient_conflict"


class LockTimeout(Exception):
    """A class lock could not be acquired in time. Retried by the controller."""

    def __init__(self, class_id: Any, timeout: Optional[float]) -> None:
        super().__init__(f"Timed out after {timeout}s waiting for class {class_id} lock")
        self.class_id = class_id
        self.timeout = timeout
