"""Enrollment error taxonomy.

Client errors (not found, unauthorized, invalid state) end the request.
ConflictError means a conditional write lost a race and the whole operation
may be retried; DependencyError covers store/notification failures and
exhausted retries.
"""


class EnrollmentError(Exception):
    """Base enrollment error."""

    def __init__(self, message: str, code: str = "enrollment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(EnrollmentError):
    """Enrollment does not exist."""

    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "not_found")


class InvalidStateError(EnrollmentError):
    """Operation is not valid for the enrollment's current status."""

    def __init__(self, message: str = "Operation not allowed in current state"):
        super().__init__(message, "invalid_state")


class UnauthorizedError(EnrollmentError):
    """Access token missing, unknown, or not bound to an active enrollment."""

    def __init__(self, message: str = "Invalid or expired access token"):
        super().__init__(message, "unauthorized")


class ConflictError(EnrollmentError):
    """A conditional update lost the race against a concurrent writer."""

    def __init__(self, message: str = "Concurrent update, retry the operation"):
        super().__init__(message, "conflict")


class DependencyError(EnrollmentError):
    """The state store or another collaborator failed."""

    def __init__(
        self,
        message: str = "Enrollment service temporarily unavailable",
        retryable: bool = False,
    ):
        self.retryable = retryable
        super().__init__(message, "dependency_error")
