"""Domain errors raised by services and rendered by the API exception handlers."""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    MALFORMED_QUERY = "MALFORMED_QUERY"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"


class DomainError(Exception):
    """Base domain error with code, HTTP status and user-safe message."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Input violates a field rule or an event invariant."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class MalformedQuery(DomainError):
    """Query parameters could not be turned into a query."""

    code = ErrorCode.MALFORMED_QUERY
    status_code = 400


class Unauthenticated(DomainError):
    code = ErrorCode.UNAUTHENTICATED
    status_code = 401


class Forbidden(DomainError):
    code = ErrorCode.FORBIDDEN
    status_code = 403


class NotFound(DomainError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class InvalidState(DomainError):
    """The aggregate is in a state that does not allow the operation."""

    code = ErrorCode.INVALID_STATE
    status_code = 400


class UpstreamFailure(DomainError):
    """A third-party collaborator (mail, payments, storage) failed."""

    code = ErrorCode.UPSTREAM_FAILURE
    status_code = 502
