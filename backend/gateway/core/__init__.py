"""Core utilities: errors, logging, metrics, and middleware."""

from gateway.core.errors import (
    AppError,
    CompletionError,
    CredentialDecryptionError,
    ErrorCode,
    ErrorResponse,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from gateway.core.logging import (
    get_logger,
    request_id_ctx,
    setup_logging,
    stream_id_ctx,
    user_id_ctx,
)
from gateway.core.middleware import RequestContextMiddleware, setup_exception_handlers
from gateway.core.redaction import sanitize_error_message

__all__ = [
    # Errors
    "AppError",
    "CompletionError",
    "CredentialDecryptionError",
    "ErrorCode",
    "ErrorResponse",
    "InternalError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationError",
    # Logging
    "get_logger",
    "request_id_ctx",
    "setup_logging",
    "stream_id_ctx",
    "user_id_ctx",
    "sanitize_error_message",
    # Middleware
    "RequestContextMiddleware",
    "setup_exception_handlers",
]
