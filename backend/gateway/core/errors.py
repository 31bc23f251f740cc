"""
Structured error handling with stable error codes.

No stack traces are exposed to clients. All errors are mapped to
stable, documented error codes for reliable client handling.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for API responses."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    METHOD_NOT_ALLOWED = "E1003"
    RATE_LIMITED = "E1005"

    # Authentication errors (2xxx)
    UNAUTHORIZED = "E2000"

    # Provider errors (4xxx)
    PROVIDER_UNAVAILABLE = "E4000"
    MODEL_NOT_FOUND = "E4002"
    PROVIDER_AUTH_FAILED = "E4005"
    CONTEXT_EXCEEDED = "E4006"
    CONTENT_POLICY = "E4007"
    PROVIDER_INVALID_REQUEST = "E4008"
    PROVIDER_NETWORK_ERROR = "E4009"
    PAYMENT_REQUIRED = "E4010"

    # Resource errors (5xxx)
    CHAT_NOT_FOUND = "E5000"
    MODEL_CONFIG_NOT_FOUND = "E5003"
    API_KEY_NOT_FOUND = "E5004"
    API_KEY_MISSING = "E5005"
    CREDENTIAL_DECRYPTION_FAILED = "E5006"


@dataclass(frozen=True)
class ErrorResponse:
    """Structured error response for API.

    Format: {error: {code, message, request_id, details?}}
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        error: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.request_id:
            error["request_id"] = self.request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


class AppError(Exception):
    """Base application error with structured error detail."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_response(self, request_id: str | None = None) -> ErrorResponse:
        """Create error response with request ID."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            request_id=request_id,
            details=self.details,
        )


# Convenience error classes
class ValidationError(AppError):
    """Validation error (400)."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(code, message, 400, details)


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        message: str = "Resource not found",
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        super().__init__(code, message, 404)


class UnauthorizedError(AppError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(ErrorCode.UNAUTHORIZED, message, 401)


class InternalError(AppError):
    """Internal failure that must not leak details (500)."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    ):
        super().__init__(code, message, 500)


class CredentialDecryptionError(InternalError):
    """Stored credential could not be decrypted (500)."""

    def __init__(self, message: str = "Failed to decrypt API key"):
        super().__init__(message, ErrorCode.CREDENTIAL_DECRYPTION_FAILED)


class CompletionError(AppError):
    """Provider failure normalized by the error classifier.

    ``kind`` is the taxonomy entry the failure was classified as; the
    message is always the pre-written user-facing text for that kind.
    """

    def __init__(
        self,
        kind: str,
        code: ErrorCode,
        message: str,
        status_code: int,
    ):
        self.kind = kind
        super().__init__(code, message, status_code)
