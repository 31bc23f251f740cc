"""
Shared HTTP client helpers for provider adapters.

Provides consistent timeouts and error wrapping. Every request is a single
attempt; failures surface as exceptions whose messages carry the upstream
status and a short, sanitized body so they can be classified downstream.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from gateway.core import get_logger, request_id_ctx, sanitize_error_message

logger = get_logger(__name__)

_BODY_SNIPPET_CHARS = 300

# Longest first so "/v1/chat/completions" wins over "/chat/completions".
_ENDPOINT_SUFFIXES = (
    "/v1/chat/completions",
    "/v1/completions",
    "/chat/completions",
    "/completions",
)


class ProviderRequestError(Exception):
    """Upstream answered with an error status."""

    def __init__(self, provider: str, status_code: int, detail: str):
        self.provider = provider
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{provider} request failed with status {status_code}: {detail}")


class ProviderConnectionError(Exception):
    """Upstream could not be reached or stopped responding."""

    def __init__(self, provider: str, exc: httpx.HTTPError):
        self.provider = provider
        reason = sanitize_error_message(str(exc))[:_BODY_SNIPPET_CHARS]
        super().__init__(
            f"{provider} connection failed ({type(exc).__name__})"
            + (f": {reason}" if reason else "")
        )


class ProviderStreamError(Exception):
    """Error event delivered inside an otherwise successful stream."""

    def __init__(self, provider: str, detail: str):
        self.provider = provider
        super().__init__(f"{provider} stream error: {sanitize_error_message(detail)}")


class ProviderResponseError(Exception):
    """Upstream answered 2xx with a body that cannot be read."""

    def __init__(self, provider: str, body: str):
        self.provider = provider
        self.body = sanitize_error_message(body[:_BODY_SNIPPET_CHARS])
        super().__init__(f"{provider} returned an unreadable response")


def sanitize_base_url(base_url: str | None) -> str | None:
    """
    Strip endpoint paths users commonly paste into a base URL.

    Returns the input unchanged when it does not parse as an absolute URL.
    """
    if not base_url:
        return None
    try:
        parts = urlsplit(base_url)
    except ValueError:
        return base_url
    if not parts.scheme or not parts.netloc:
        return base_url

    path = parts.path
    for suffix in _ENDPOINT_SUFFIXES:
        if path.endswith(suffix):
            path = path[: -len(suffix)]
            break
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def create_http_client(
    base_url: str,
    timeout_seconds: int,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient with consistent timeout settings.

    Args:
        base_url: Base URL for the provider.
        timeout_seconds: Total timeout for requests.
        headers: Default headers to include.
        transport: Optional transport (used by tests with MockTransport).
    """
    timeout = httpx.Timeout(
        timeout_seconds, connect=timeout_seconds, read=timeout_seconds, write=timeout_seconds
    )
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/") + "/",
        timeout=timeout,
        headers=headers or {},
        transport=transport,
    )


def _request_headers(extra: dict[str, str] | None) -> dict[str, str]:
    headers = dict(extra or {})
    request_id = request_id_ctx.get()
    if request_id and "X-Request-ID" not in headers:
        headers["X-Request-ID"] = request_id
    return headers


async def send_request(
    client: httpx.AsyncClient,
    provider: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Execute a single HTTP request, wrapping transport failures."""
    kwargs["headers"] = _request_headers(kwargs.get("headers"))
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise ProviderConnectionError(provider, exc) from exc
    await raise_for_status(response, provider)
    return response


async def open_stream(
    client: httpx.AsyncClient,
    provider: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """
    Open a streaming request.

    The caller owns the returned response and must ``aclose()`` it.
    """
    kwargs["headers"] = _request_headers(kwargs.get("headers"))
    request = client.build_request(method, url, **kwargs)
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        raise ProviderConnectionError(provider, exc) from exc
    try:
        await raise_for_status(response, provider)
    except BaseException:
        await response.aclose()
        raise
    return response


async def raise_for_status(response: httpx.Response, provider: str) -> None:
    """Raise ProviderRequestError for 4xx/5xx responses."""
    if response.status_code < 400:
        return
    try:
        body = (await response.aread()).decode("utf-8", errors="replace")
    except httpx.HTTPError:
        body = ""
    detail = _error_detail(body) or response.reason_phrase or "no details"
    logger.warning(
        "Provider returned error status",
        data={"provider": provider, "status": response.status_code, "url": str(response.url)},
    )
    raise ProviderRequestError(provider, response.status_code, detail)


def parse_json(response: httpx.Response, provider: str) -> Any:
    """Parse JSON with consistent error handling."""
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        raise ProviderResponseError(provider, response.text or "") from exc


def _error_detail(body: str) -> str:
    """Pull the vendor's error message out of a body, falling back to a snippet."""
    message: Any = None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict):
        error = payload.get("error", payload)
        if isinstance(error, dict):
            parts = [error.get("type"), error.get("code"), error.get("status"), error.get("message")]
            message = " ".join(str(p) for p in parts if p)
        elif isinstance(error, str):
            message = error
    text = message or body
    return sanitize_error_message(text.strip())[:_BODY_SNIPPET_CHARS]


async def iter_sse(response: httpx.Response) -> AsyncIterator[tuple[str | None, str]]:
    """
    Yield ``(event, data)`` pairs from a server-sent event stream.

    Multi-line ``data:`` fields are joined with newlines; comments and
    blank keep-alives are skipped.
    """
    event: str | None = None
    data_lines: list[str] = []
    async for line in response.aiter_lines():
        if not line:
            if data_lines:
                yield event, "\n".join(data_lines)
            event = None
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data_lines.append(value)
    if data_lines:
        yield event, "\n".join(data_lines)


def load_event(data: str, provider: str) -> dict[str, Any]:
    """Decode one SSE data payload."""
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ProviderResponseError(provider, data) from exc
    if not isinstance(payload, dict):
        raise ProviderResponseError(provider, data)
    return payload
