"""
Service Exceptions

Error taxonomy shared by the streak core, the service layer and the API.

Every error carries an HTTP status code and an error code so the error
handling middleware can render a consistent response:

    ServiceError
    ├── ValidationError   422  bad input (rating out of range, unknown timezone)
    ├── StateError        409  operation invalid for the current lifecycle state
    ├── PolicyLimitError  429  too many outstanding comprehension checks
    ├── ConflictError     409  lost an optimistic-concurrency race (transient)
    └── NotFoundError     404  unknown user, item, stack or check

Only ConflictError is transient; the service layer retries it a bounded
number of times before surfacing it. The weekly card cap is not an error.
"""

from typing import Optional


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class ValidationError(ServiceError):
    """
    Data validation error.

    Raised for out-of-range ratings, unrecognized timezones and naive
    timestamps. Terminal: the caller must correct the input.
    """

    status_code = 422
    error_code = "validation_error"


class StateError(ServiceError):
    """
    Lifecycle state error.

    Raised when an operation is invalid for the current state of a stack or
    check, e.g. completing a stack that is already completed. Indicates a
    caller-side bug.
    """

    status_code = 409
    error_code = "invalid_state"


class PolicyLimitError(ServiceError):
    """
    Policy limit error.

    Raised when a user already has the maximum number of unresolved
    comprehension checks outstanding.
    """

    status_code = 429
    error_code = "policy_limit"


class ConflictError(ServiceError):
    """
    Concurrent modification error.

    Raised by the persistence layer when a write loses an optimistic
    concurrency race. Retried automatically before being surfaced.
    """

    status_code = 409
    error_code = "conflict"


class NotFoundError(ServiceError):
    """
    Resource not found error.

    Raised when a requested user, item, stack or check doesn't exist.
    """

    status_code = 404
    error_code = "not_found"
