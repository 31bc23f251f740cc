"""
Classification of provider failures into a fixed error taxonomy.

Raw failures (vendor HTTP errors, transport errors, anything an adapter
raises) are sanitized and then matched, case-insensitively, against an
ordered list of substring groups. The first group with a hit wins, so the
order of ``ERROR_RULES`` is part of the contract.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gateway.core import CompletionError, ErrorCode, get_logger, sanitize_error_message
from gateway.core.metrics import metrics

logger = get_logger(__name__)


class ErrorKind(str, Enum):
    """Closed set of failure categories surfaced to callers."""

    RATE_LIMITED = "RateLimited"
    UNAUTHORIZED = "Unauthorized"
    MODEL_NOT_FOUND = "ModelNotFound"
    CONTEXT_EXCEEDED = "ContextExceeded"
    CONTENT_POLICY = "ContentPolicy"
    INVALID_REQUEST = "InvalidRequest"
    NETWORK_ERROR = "NetworkError"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    PAYMENT_REQUIRED = "PaymentRequired"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ErrorClassification:
    """Result of classifying one failure."""

    kind: ErrorKind
    user_message: str
    detail: str  # sanitized raw message, for server-side logs only

    @property
    def code(self) -> ErrorCode:
        return ERROR_CODES[self.kind][0]

    @property
    def status_code(self) -> int:
        return ERROR_CODES[self.kind][1]


ERROR_RULES: list[tuple[tuple[str, ...], ErrorKind]] = [
    (
        ("rate limit", "rate_limit_exceeded", "429", "quota", "too many requests", "requests exceeded"),
        ErrorKind.RATE_LIMITED,
    ),
    (
        ("api key", "unauthorized", "401", "403", "authentication", "invalid api key", "incorrect api key"),
        ErrorKind.UNAUTHORIZED,
    ),
    (
        ("model not found", "invalid model", "404", "model does not exist", "no such model"),
        ErrorKind.MODEL_NOT_FOUND,
    ),
    (
        ("context", "context_length_exceeded", "tokens", "too long", "maximum", "exceeds maximum length"),
        ErrorKind.CONTEXT_EXCEEDED,
    ),
    (
        ("content policy", "content_filter", "safety", "moderation", "policy violation"),
        ErrorKind.CONTENT_POLICY,
    ),
    (
        ("invalid", "validation", "schema", "malformed", "bad request", "400"),
        ErrorKind.INVALID_REQUEST,
    ),
    (
        ("network", "connection", "fetch", "econnrefused", "etimedout", "timeout", "dns"),
        ErrorKind.NETWORK_ERROR,
    ),
    (
        ("503", "service unavailable", "maintenance", "overloaded", "temporarily unavailable"),
        ErrorKind.SERVICE_UNAVAILABLE,
    ),
    (
        ("payment", "billing", "insufficient", "402", "quota exceeded"),
        ErrorKind.PAYMENT_REQUIRED,
    ),
]

USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMITED: "Rate limit exceeded. Please wait a moment and try again.",
    ErrorKind.UNAUTHORIZED: "Invalid API key. Please check your provider credentials.",
    ErrorKind.MODEL_NOT_FOUND: (
        "The specified model is not available or you do not have access to it."
    ),
    ErrorKind.CONTEXT_EXCEEDED: (
        "The conversation is too long. Please start a new chat or reduce the message length."
    ),
    ErrorKind.CONTENT_POLICY: (
        "The content was flagged by the safety filter. Please modify your message and try again."
    ),
    ErrorKind.INVALID_REQUEST: "Invalid request format. Please check your input and try again.",
    ErrorKind.NETWORK_ERROR: "Network error. Please check your connection and try again.",
    ErrorKind.SERVICE_UNAVAILABLE: (
        "The service is temporarily unavailable. Please try again later."
    ),
    ErrorKind.PAYMENT_REQUIRED: (
        "Payment required or quota exceeded. Please check your billing details."
    ),
    ErrorKind.UNKNOWN: "An error occurred while processing your request. Please try again.",
}

ERROR_CODES: dict[ErrorKind, tuple[ErrorCode, int]] = {
    ErrorKind.RATE_LIMITED: (ErrorCode.RATE_LIMITED, 429),
    ErrorKind.UNAUTHORIZED: (ErrorCode.PROVIDER_AUTH_FAILED, 401),
    ErrorKind.MODEL_NOT_FOUND: (ErrorCode.MODEL_NOT_FOUND, 404),
    ErrorKind.CONTEXT_EXCEEDED: (ErrorCode.CONTEXT_EXCEEDED, 400),
    ErrorKind.CONTENT_POLICY: (ErrorCode.CONTENT_POLICY, 400),
    ErrorKind.INVALID_REQUEST: (ErrorCode.PROVIDER_INVALID_REQUEST, 400),
    ErrorKind.NETWORK_ERROR: (ErrorCode.PROVIDER_NETWORK_ERROR, 503),
    ErrorKind.SERVICE_UNAVAILABLE: (ErrorCode.PROVIDER_UNAVAILABLE, 503),
    ErrorKind.PAYMENT_REQUIRED: (ErrorCode.PAYMENT_REQUIRED, 402),
    ErrorKind.UNKNOWN: (ErrorCode.INTERNAL_ERROR, 500),
}


def _raw_message(error: object) -> str:
    if isinstance(error, BaseException):
        message = str(error)
        return message or type(error).__name__
    if error is None:
        return ""
    return str(error)


def classify(error: object) -> ErrorClassification:
    """
    Classify any failure. Never raises.

    Args:
        error: An exception or any other value (stringified).

    Returns:
        ErrorClassification with the matched kind, its user message and
        the sanitized raw message.
    """
    detail = sanitize_error_message(_raw_message(error))
    haystack = detail.lower()

    kind = ErrorKind.UNKNOWN
    for patterns, candidate in ERROR_RULES:
        if any(pattern in haystack for pattern in patterns):
            kind = candidate
            break

    logger.warning(
        "Provider failure classified",
        data={
            "kind": kind.value,
            "error_type": type(error).__name__,
            "detail": detail,
        },
    )
    metrics.increment("provider_errors_total")
    metrics.increment(f"provider_errors.{kind.value}")
    return ErrorClassification(kind=kind, user_message=USER_MESSAGES[kind], detail=detail)


def to_completion_error(classification: ErrorClassification) -> CompletionError:
    """Build the AppError raised to callers of the batch API."""
    return CompletionError(
        kind=classification.kind.value,
        code=classification.code,
        message=classification.user_message,
        status_code=classification.status_code,
    )
