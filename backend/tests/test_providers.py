"""Tests for the model handle factory and provider adapters."""

from __future__ import annotations

import json

import httpx
import pytest

from gateway.config import Settings
from gateway.providers import (
    AnthropicModel,
    ChatMessage,
    GenerationSettings,
    GoogleModel,
    OpenAICompatModel,
    ProviderConnectionError,
    ProviderKind,
    ProviderRequestError,
    ProviderStreamError,
    ResolvedModelConfig,
    build_model,
    sanitize_base_url,
)
from gateway.services.error_classifier import ErrorKind, classify

MESSAGES = [
    ChatMessage(role="system", content="Be brief."),
    ChatMessage(role="user", content="Hello"),
]


def make_config(provider: ProviderKind, **overrides) -> ResolvedModelConfig:
    values = {
        "id": "model-1",
        "owner_id": "user-1",
        "provider": provider,
        "provider_model_id": "test-model",
        "name": "Test",
        "api_key": None if provider == ProviderKind.OLLAMA else "secret-key",
    }
    values.update(overrides)
    return ResolvedModelConfig(**values)


def sse_body(*events: str) -> bytes:
    return "".join(f"{event}\n\n" for event in events).encode()


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it sees."""

    def __init__(self, handler=None):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if handler is None:
                return httpx.Response(200, json={})
            return handler(request)

        super().__init__(record)


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", list(ProviderKind))
async def test_build_model_performs_no_io(provider: ProviderKind) -> None:
    transport = RecordingTransport()
    handle = build_model(make_config(provider), transport=transport, settings=Settings())

    assert handle.provider == provider
    assert transport.requests == []
    await handle.aclose()
    assert transport.requests == []


@pytest.mark.asyncio
async def test_build_model_dispatches_by_provider() -> None:
    settings = Settings()
    cases = {
        ProviderKind.OPENAI: (OpenAICompatModel, "https://api.openai.com/v1/"),
        ProviderKind.OTHER: (OpenAICompatModel, "https://api.openai.com/v1/"),
        ProviderKind.GROQ: (OpenAICompatModel, "https://api.groq.com/openai/v1/"),
        ProviderKind.OPENROUTER: (OpenAICompatModel, "https://openrouter.ai/api/v1/"),
        ProviderKind.OLLAMA: (OpenAICompatModel, "http://localhost:11434/v1/"),
        ProviderKind.ANTHROPIC: (AnthropicModel, "https://api.anthropic.com/"),
        ProviderKind.GOOGLE: (GoogleModel, "https://generativelanguage.googleapis.com/"),
    }
    for provider, (handle_type, base_url) in cases.items():
        handle = build_model(make_config(provider), settings=settings)
        assert isinstance(handle, handle_type)
        assert str(handle.client.base_url) == base_url
        await handle.aclose()


@pytest.mark.asyncio
async def test_build_model_uses_sanitized_custom_base_url() -> None:
    config = make_config(ProviderKind.OTHER, base_url="https://llm.example.com/v1/chat/completions")
    handle = build_model(config, settings=Settings())
    assert str(handle.client.base_url) == "https://llm.example.com/v1/"
    await handle.aclose()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("https://api.example.com/v1/chat/completions", "https://api.example.com/v1"),
        ("https://api.example.com/v1/completions", "https://api.example.com/v1"),
        ("https://api.example.com/openai/chat/completions", "https://api.example.com/openai"),
        ("https://api.example.com/v1/", "https://api.example.com/v1"),
        ("https://api.example.com/v1", "https://api.example.com/v1"),
        ("not a url", "not a url"),
        (None, None),
    ],
)
def test_sanitize_base_url(raw: str | None, expected: str | None) -> None:
    assert sanitize_base_url(raw) == expected


@pytest.mark.asyncio
async def test_openai_generate_text_sends_translated_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "chatcmpl-1",
                "model": "test-model",
                "choices": [{"message": {"content": "Hi there"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 4, "completion_tokens": 2},
            },
        )

    transport = RecordingTransport(handler)
    handle = build_model(make_config(ProviderKind.OPENAI), transport=transport, settings=Settings())
    result = await handle.generate_text(
        MESSAGES, GenerationSettings(temperature=0.2, max_tokens=50, top_k=5)
    )
    await handle.aclose()

    request = transport.requests[0]
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer secret-key"
    body = json.loads(request.content)
    assert body["messages"][0] == {"role": "system", "content": "Be brief."}
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 50
    assert "top_k" not in body
    assert "top_p" not in body
    assert body["stream"] is False

    assert result.text == "Hi there"
    assert result.finish_reason == "stop"
    assert result.usage.total_tokens == 6


@pytest.mark.asyncio
async def test_openai_stream_text_yields_deltas_and_usage() -> None:
    body = sse_body(
        'data: {"choices":[{"delta":{"role":"assistant"}}]}',
        'data: {"choices":[{"delta":{"content":"Hel"}}]}',
        'data: {"choices":[{"delta":{"content":"lo"},"finish_reason":"length"}]}',
        'data: {"choices":[],"usage":{"prompt_tokens":3,"completion_tokens":2,"total_tokens":5}}',
        "data: [DONE]",
    )
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200, content=body, headers={"content-type": "text/event-stream"}
        )
    )
    handle = build_model(make_config(ProviderKind.GROQ), transport=transport, settings=Settings())
    stream = handle.stream_text(MESSAGES, GenerationSettings())
    chunks = [chunk async for chunk in stream]
    await handle.aclose()

    assert chunks == ["Hel", "lo"]
    assert stream.finish_reason == "length"
    assert stream.usage.total_tokens == 5
    sent = json.loads(transport.requests[0].content)
    assert sent["stream"] is True
    assert sent["stream_options"] == {"include_usage": True}


@pytest.mark.asyncio
async def test_ollama_without_key_sends_no_authorization() -> None:
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200, json={"choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]}
        )
    )
    handle = build_model(make_config(ProviderKind.OLLAMA), transport=transport, settings=Settings())
    await handle.generate_text(MESSAGES, GenerationSettings())
    await handle.aclose()

    assert "Authorization" not in transport.requests[0].headers


@pytest.mark.asyncio
async def test_anthropic_generate_text_moves_system_prompt() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "msg_1",
                "model": "test-model",
                "content": [{"type": "text", "text": "Hi"}, {"type": "text", "text": "!"}],
                "stop_reason": "max_tokens",
                "usage": {"input_tokens": 7, "output_tokens": 2},
            },
        )

    transport = RecordingTransport(handler)
    settings = Settings(anthropic_default_max_tokens=321)
    handle = build_model(make_config(ProviderKind.ANTHROPIC), transport=transport, settings=settings)
    result = await handle.generate_text(MESSAGES, GenerationSettings(top_k=10))
    await handle.aclose()

    request = transport.requests[0]
    assert request.url.path == "/v1/messages"
    assert request.headers["x-api-key"] == "secret-key"
    assert request.headers["anthropic-version"] == settings.anthropic_api_version
    body = json.loads(request.content)
    assert body["system"] == "Be brief."
    assert body["messages"] == [{"role": "user", "content": "Hello"}]
    assert body["max_tokens"] == 321
    assert body["top_k"] == 10

    assert result.text == "Hi!"
    assert result.finish_reason == "length"
    assert result.usage.prompt_tokens == 7
    assert result.usage.total_tokens == 9


@pytest.mark.asyncio
async def test_anthropic_joins_consecutive_same_role_turns() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"id": "msg_2", "content": [{"type": "text", "text": "ok"}], "usage": {}},
        )

    transport = RecordingTransport(handler)
    handle = build_model(make_config(ProviderKind.ANTHROPIC), transport=transport, settings=Settings())
    await handle.generate_text(
        [
            ChatMessage(role="user", content="First"),
            ChatMessage(role="system", content="Be brief."),
            ChatMessage(role="user", content="Second"),
            ChatMessage(role="assistant", content="Reply"),
            ChatMessage(role="assistant", content="More"),
            ChatMessage(role="user", content="Third"),
        ],
        GenerationSettings(),
    )
    await handle.aclose()

    body = json.loads(transport.requests[0].content)
    assert body["system"] == "Be brief."
    assert body["messages"] == [
        {"role": "user", "content": "First\n\nSecond"},
        {"role": "assistant", "content": "Reply\n\nMore"},
        {"role": "user", "content": "Third"},
    ]


@pytest.mark.asyncio
async def test_anthropic_stream_text_parses_message_events() -> None:
    body = sse_body(
        'event: message_start\ndata: {"type":"message_start","message":{"usage":{"input_tokens":5,"output_tokens":1}}}',
        'event: content_block_start\ndata: {"type":"content_block_start","index":0}',
        'event: ping\ndata: {"type":"ping"}',
        'event: content_block_delta\ndata: {"type":"content_block_delta","delta":{"type":"text_delta","text":"Hel"}}',
        'event: content_block_delta\ndata: {"type":"content_block_delta","delta":{"type":"text_delta","text":"lo"}}',
        'event: message_delta\ndata: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":4}}',
        'event: message_stop\ndata: {"type":"message_stop"}',
    )
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200, content=body, headers={"content-type": "text/event-stream"}
        )
    )
    handle = build_model(make_config(ProviderKind.ANTHROPIC), transport=transport, settings=Settings())
    stream = handle.stream_text(MESSAGES, GenerationSettings())
    chunks = [chunk async for chunk in stream]
    await handle.aclose()

    assert chunks == ["Hel", "lo"]
    assert stream.finish_reason == "stop"
    assert stream.usage.prompt_tokens == 5
    assert stream.usage.completion_tokens == 4
    assert stream.usage.total_tokens == 9


@pytest.mark.asyncio
async def test_anthropic_stream_error_event_raises() -> None:
    body = sse_body(
        'event: content_block_delta\ndata: {"type":"content_block_delta","delta":{"type":"text_delta","text":"Hi"}}',
        'event: error\ndata: {"type":"error","error":{"type":"overloaded_error","message":"Overloaded"}}',
    )
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200, content=body, headers={"content-type": "text/event-stream"}
        )
    )
    handle = build_model(make_config(ProviderKind.ANTHROPIC), transport=transport, settings=Settings())
    stream = handle.stream_text(MESSAGES, GenerationSettings())
    received: list[str] = []
    with pytest.raises(ProviderStreamError) as exc:
        async for chunk in stream:
            received.append(chunk)
    await handle.aclose()

    assert received == ["Hi"]
    assert classify(exc.value).kind == ErrorKind.SERVICE_UNAVAILABLE


@pytest.mark.asyncio
async def test_google_generate_text_translates_roles_and_config() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {"content": {"parts": [{"text": "Hi"}]}, "finishReason": "SAFETY"}
                ],
                "usageMetadata": {
                    "promptTokenCount": 3,
                    "candidatesTokenCount": 1,
                    "totalTokenCount": 4,
                },
            },
        )

    transport = RecordingTransport(handler)
    handle = build_model(make_config(ProviderKind.GOOGLE), transport=transport, settings=Settings())
    messages = MESSAGES + [
        ChatMessage(role="assistant", content="Hey"),
        ChatMessage(role="user", content="Again"),
    ]
    result = await handle.generate_text(
        messages, GenerationSettings(max_tokens=20, top_p=0.5, presence_penalty=1.0)
    )
    await handle.aclose()

    request = transport.requests[0]
    assert request.url.path == "/v1beta/models/test-model:generateContent"
    assert request.headers["x-goog-api-key"] == "secret-key"
    body = json.loads(request.content)
    assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
    assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
    assert body["generationConfig"] == {"maxOutputTokens": 20, "topP": 0.5, "presencePenalty": 1.0}

    assert result.text == "Hi"
    assert result.finish_reason == "content-filter"
    assert result.usage.total_tokens == 4


@pytest.mark.asyncio
async def test_google_stream_text_uses_sse_endpoint() -> None:
    body = sse_body(
        'data: {"candidates":[{"content":{"parts":[{"text":"Hel"}]}}]}',
        'data: {"candidates":[{"content":{"parts":[{"text":"lo"}]},"finishReason":"STOP"}],'
        '"usageMetadata":{"promptTokenCount":2,"candidatesTokenCount":2}}',
    )
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200, content=body, headers={"content-type": "text/event-stream"}
        )
    )
    handle = build_model(make_config(ProviderKind.GOOGLE), transport=transport, settings=Settings())
    stream = handle.stream_text(MESSAGES, GenerationSettings())
    chunks = [chunk async for chunk in stream]
    await handle.aclose()

    request = transport.requests[0]
    assert request.url.path == "/v1beta/models/test-model:streamGenerateContent"
    assert request.url.params["alt"] == "sse"
    assert chunks == ["Hel", "lo"]
    assert stream.finish_reason == "stop"
    assert stream.usage.total_tokens == 4


@pytest.mark.asyncio
async def test_error_status_raises_classifiable_error_without_leaking_key() -> None:
    secret = "sk-live-abcdefghijklmnopqrstuvwxyz"
    transport = RecordingTransport(
        lambda request: httpx.Response(
            401,
            json={"error": {"message": f"Incorrect API key provided: {secret}", "code": "invalid_api_key"}},
        )
    )
    handle = build_model(make_config(ProviderKind.OPENAI), transport=transport, settings=Settings())
    with pytest.raises(ProviderRequestError) as exc:
        await handle.generate_text(MESSAGES, GenerationSettings())
    await handle.aclose()

    assert exc.value.status_code == 401
    assert secret not in str(exc.value)
    assert classify(exc.value).kind == ErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_stream_error_status_raises_before_first_chunk() -> None:
    transport = RecordingTransport(
        lambda request: httpx.Response(429, json={"error": {"message": "Rate limit reached"}})
    )
    handle = build_model(make_config(ProviderKind.OPENAI), transport=transport, settings=Settings())
    stream = handle.stream_text(MESSAGES, GenerationSettings())
    with pytest.raises(ProviderRequestError) as exc:
        await stream.__anext__()
    await handle.aclose()

    assert exc.value.status_code == 429
    assert classify(exc.value).kind == ErrorKind.RATE_LIMITED


@pytest.mark.asyncio
async def test_transport_failure_maps_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    handle = build_model(
        make_config(ProviderKind.OLLAMA), transport=httpx.MockTransport(handler), settings=Settings()
    )
    with pytest.raises(ProviderConnectionError) as exc:
        await handle.generate_text(MESSAGES, GenerationSettings())
    await handle.aclose()

    assert classify(exc.value).kind == ErrorKind.NETWORK_ERROR
