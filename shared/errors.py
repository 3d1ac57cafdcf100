"""
Shared error handling for the 254Carbon API Key Service.

Every failure raised by the signing, verification and persistence code is an
``ApiKeyError`` subclass carrying the HTTP status it maps to and a
machine-readable ``error_type``.
"""

from enum import Enum
from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorType(str, Enum):
    """Machine-readable error kinds."""

    UNKNOWN = "unknown"
    INCORRECT_USAGE = "incorrect_usage"
    INVALID_INPUT = "invalid_input"
    SIGNING_ERROR = "signing_error"
    MALFORMED_TOKEN = "malformed_token"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    DATABASE_ERROR = "database_error"


class ErrorDetail(BaseModel):
    """Error body payload."""

    type: ErrorType
    message: str
    cause: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: ErrorDetail


class ApiKeyError(Exception):
    """Base exception for API key services."""

    def __init__(
        self,
        status_code: int,
        error_type: ErrorType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.error_type = error_type
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, include_cause: bool = False) -> ErrorResponse:
        """Convert to error response.

        ``include_cause`` adds the underlying exception, which is only useful
        outside production.
        """
        detail = ErrorDetail(type=self.error_type, message=self.message)
        if include_cause and self.__cause__ is not None:
            detail.cause = repr(self.__cause__)
        return ErrorResponse(error=detail)


class UnexpectedError(ApiKeyError):
    """Known failure modes that should not happen in normal operation.

    These are never triggered by bad client input; seeing one means the
    embedding application or the runtime misbehaved.
    """

    def __init__(self, message: str, error_type: ErrorType, details: Optional[Dict[str, Any]] = None):
        super().__init__(500, error_type, message, details)


class UnknownError(ApiKeyError):
    """Wraps any exception that escaped without a typed error.

    Its presence in logs is a gap in the error handling that needs fixing.
    """

    def __init__(self, message: str = "Unknown error", details: Optional[Dict[str, Any]] = None):
        super().__init__(500, ErrorType.UNKNOWN, message, details)


class IncorrectUsageError(UnexpectedError):
    """The caller violated a precondition of the API."""

    def __init__(self, message: str = "Incorrect usage", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorType.INCORRECT_USAGE, details)


class SigningError(UnexpectedError):
    """Key generation, export or signing failed."""

    def __init__(self, message: str = "Signing failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorType.SIGNING_ERROR, details)


class DatabaseError(UnexpectedError):
    """The key store failed."""

    def __init__(self, message: str = "Database error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorType.DATABASE_ERROR, details)


class InvalidInputError(ApiKeyError):
    """Client supplied data that cannot be processed."""

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__(400, ErrorType.INVALID_INPUT, message, details)


class MalformedTokenError(ApiKeyError):
    """Token failed a structural check before any cryptography ran."""

    def __init__(self, message: str = "Malformed token", details: Optional[Dict[str, Any]] = None):
        super().__init__(401, ErrorType.MALFORMED_TOKEN, message, details)


class UnauthorizedError(ApiKeyError):
    """Token is well formed but could not be cryptographically confirmed."""

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(403, ErrorType.UNAUTHORIZED, message, details)


class NotFoundError(ApiKeyError):
    """Requested key or route does not exist."""

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(404, ErrorType.NOT_FOUND, message, details)
