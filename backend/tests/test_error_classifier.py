"""Tests for provider failure classification."""

from __future__ import annotations

import logging

import httpx
import pytest

from gateway.core import CompletionError, ErrorCode
from gateway.providers import ProviderConnectionError, ProviderRequestError
from gateway.services.error_classifier import (
    ERROR_CODES,
    ERROR_RULES,
    USER_MESSAGES,
    ErrorKind,
    classify,
    to_completion_error,
)


@pytest.mark.parametrize(
    ("raw", "kind"),
    [
        ("Rate limit exceeded, try later", ErrorKind.RATE_LIMITED),
        ("401 Unauthorized", ErrorKind.UNAUTHORIZED),
        ("context_length_exceeded", ErrorKind.CONTEXT_EXCEEDED),
        ("ECONNREFUSED", ErrorKind.NETWORK_ERROR),
        ("The model `gpt-9` does not exist or model not found", ErrorKind.MODEL_NOT_FOUND),
        ("Your request was rejected by our content_filter", ErrorKind.CONTENT_POLICY),
        ("Malformed JSON body", ErrorKind.INVALID_REQUEST),
        ("Service Unavailable", ErrorKind.SERVICE_UNAVAILABLE),
        ("Your billing details need attention", ErrorKind.PAYMENT_REQUIRED),
        ("something odd happened", ErrorKind.UNKNOWN),
    ],
)
def test_classify_known_messages(raw: str, kind: ErrorKind) -> None:
    assert classify(raw).kind == kind


def test_classify_is_case_insensitive() -> None:
    assert classify("TOO MANY REQUESTS").kind == ErrorKind.RATE_LIMITED


def test_rule_order_resolves_overlapping_phrases() -> None:
    """Earlier groups win when a message matches several groups."""
    kinds = [kind for _, kind in ERROR_RULES]
    assert kinds == [
        ErrorKind.RATE_LIMITED,
        ErrorKind.UNAUTHORIZED,
        ErrorKind.MODEL_NOT_FOUND,
        ErrorKind.CONTEXT_EXCEEDED,
        ErrorKind.CONTENT_POLICY,
        ErrorKind.INVALID_REQUEST,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.PAYMENT_REQUIRED,
    ]
    # "quota exceeded" is listed under PaymentRequired but "quota" hits RateLimited first
    assert classify("quota exceeded").kind == ErrorKind.RATE_LIMITED
    # "invalid api key" also contains "invalid" but Unauthorized comes first
    assert classify("Invalid API key provided").kind == ErrorKind.UNAUTHORIZED
    # "maximum" (context) precedes "invalid" (request)
    assert classify("invalid: exceeds maximum").kind == ErrorKind.CONTEXT_EXCEEDED
    # "timeout" (network) precedes "503" (service)
    assert classify("503 upstream timeout").kind == ErrorKind.NETWORK_ERROR


@pytest.mark.parametrize("raw", [None, 42, "", ValueError(), {"error": "x"}])
def test_classify_is_total(raw: object) -> None:
    result = classify(raw)
    assert result.kind in ErrorKind
    assert result.user_message == USER_MESSAGES[result.kind]


def test_every_kind_has_message_and_code() -> None:
    for kind in ErrorKind:
        assert USER_MESSAGES[kind]
        assert kind in ERROR_CODES
    unknown = classify("")
    assert unknown.kind == ErrorKind.UNKNOWN
    assert unknown.code == ErrorCode.INTERNAL_ERROR
    assert unknown.status_code == 500


def test_secret_keys_are_sanitized_in_detail_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    secret = "sk-proj-abcdefghijklmnopqrstuvwxyz0123"
    with caplog.at_level(logging.WARNING):
        result = classify(RuntimeError(f"Incorrect API key provided: {secret}"))

    assert result.kind == ErrorKind.UNAUTHORIZED
    assert secret not in result.detail
    assert "sk-****" in result.detail
    assert secret not in result.user_message
    assert secret not in caplog.text
    for record in caplog.records:
        assert secret not in str(getattr(record, "data", ""))


def test_other_vendor_keys_are_redacted() -> None:
    google_key = "AIza" + "A" * 35
    result = classify(f"bad key {google_key}")
    assert google_key not in result.detail
    assert "[REDACTED]" in result.detail


def test_adapter_errors_classify_by_status() -> None:
    assert classify(ProviderRequestError("openai", 429, "slow down")).kind == ErrorKind.RATE_LIMITED
    assert classify(ProviderRequestError("openai", 404, "nope")).kind == ErrorKind.MODEL_NOT_FOUND
    assert classify(ProviderRequestError("groq", 402, "pay up")).kind == ErrorKind.PAYMENT_REQUIRED
    connect = ProviderConnectionError("ollama", httpx.ConnectError("refused"))
    assert classify(connect).kind == ErrorKind.NETWORK_ERROR


def test_to_completion_error_carries_code_status_and_user_message() -> None:
    error = to_completion_error(classify("429 Too Many Requests"))
    assert isinstance(error, CompletionError)
    assert error.kind == ErrorKind.RATE_LIMITED.value
    assert error.code == ErrorCode.RATE_LIMITED
    assert error.status_code == 429
    assert error.message == USER_MESSAGES[ErrorKind.RATE_LIMITED]
