"""Masking of credential-shaped substrings in error text and log output."""

from __future__ import annotations

import re

REDACTED = "[REDACTED]"

# OpenAI-style secret keys (also covers sk-ant-* and sk-or-* keys).
SECRET_KEY_PATTERN = re.compile(r"sk-[A-Za-z0-9_-]{20,}")

_VENDOR_KEY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"AIza[A-Za-z0-9_-]{35}"),
    re.compile(r"gsk_[A-Za-z0-9_-]{32,}"),
    re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
)

_BEARER_PATTERN = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]{8,}")


def sanitize_error_message(message: str) -> str:
    """Mask anything that looks like a provider credential."""
    if not message:
        return message
    sanitized = SECRET_KEY_PATTERN.sub("sk-****", message)
    for pattern in _VENDOR_KEY_PATTERNS:
        sanitized = pattern.sub(REDACTED, sanitized)
    return _BEARER_PATTERN.sub(lambda m: f"{m.group(1)}{REDACTED}", sanitized)


def redact_data(data: object) -> object:
    """Apply ``sanitize_error_message`` to every string in a nested payload."""
    if isinstance(data, str):
        return sanitize_error_message(data)
    if isinstance(data, dict):
        return {key: redact_data(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [redact_data(item) for item in data]
    return data
