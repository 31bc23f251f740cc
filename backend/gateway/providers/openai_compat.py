"""OpenAI-compatible provider adapter (OpenAI, Groq, OpenRouter, Ollama, custom)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx

from gateway.providers.base import (
    ChatMessage,
    FinishReason,
    GenerationResult,
    GenerationSettings,
    ModelHandle,
    ProviderKind,
    TextStream,
    Usage,
    normalize_finish_reason,
)
from gateway.providers.http_client import (
    ProviderResponseError,
    create_http_client,
    iter_sse,
    load_event,
    open_stream,
    parse_json,
    send_request,
)

FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
}


class OpenAICompatModel(ModelHandle):
    """Model served by a ``/chat/completions`` endpoint."""

    def __init__(
        self,
        provider: ProviderKind,
        model_id: str,
        base_url: str,
        api_key: str | None,
        timeout: int,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        super().__init__(
            model_id,
            create_http_client(
                base_url=base_url,
                timeout_seconds=timeout,
                headers=headers,
                transport=transport,
            ),
        )

    def _payload(
        self, messages: list[ChatMessage], settings: GenerationSettings, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model_id,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": stream,
        }
        if stream:
            payload["stream_options"] = {"include_usage": True}
        # top_k has no counterpart in this API
        if settings.temperature is not None:
            payload["temperature"] = settings.temperature
        if settings.max_tokens is not None:
            payload["max_tokens"] = settings.max_tokens
        if settings.top_p is not None:
            payload["top_p"] = settings.top_p
        if settings.frequency_penalty is not None:
            payload["frequency_penalty"] = settings.frequency_penalty
        if settings.presence_penalty is not None:
            payload["presence_penalty"] = settings.presence_penalty
        return payload

    async def generate_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> GenerationResult:
        response = await send_request(
            self.client,
            self.provider.value,
            "POST",
            "chat/completions",
            json=self._payload(messages, settings, stream=False),
        )
        data = parse_json(response, self.provider.value)

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ProviderResponseError(self.provider.value, response.text)
        choice = choices[0]
        text = (choice.get("message") or {}).get("content") or ""

        return GenerationResult(
            text=text,
            usage=_usage(data.get("usage")),
            finish_reason=normalize_finish_reason(choice.get("finish_reason"), FINISH_REASONS),
            response={"id": data.get("id"), "model": data.get("model", self.model_id)},
        )

    def stream_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> TextStream:
        payload = self._payload(messages, settings, stream=True)

        async def produce(stream: TextStream) -> AsyncIterator[str]:
            response = await open_stream(
                self.client, self.provider.value, "POST", "chat/completions", json=payload
            )
            try:
                async for _event, data in iter_sse(response):
                    if data.strip() == "[DONE]":
                        break
                    chunk = load_event(data, self.provider.value)
                    if chunk.get("usage"):
                        stream.usage = _usage(chunk["usage"])
                    for choice in chunk.get("choices") or []:
                        if choice.get("finish_reason"):
                            stream.finish_reason = normalize_finish_reason(
                                choice["finish_reason"], FINISH_REASONS
                            )
                        content = (choice.get("delta") or {}).get("content")
                        if content:
                            yield content
            finally:
                await response.aclose()

        return TextStream(produce)


def _usage(raw: dict[str, Any] | None) -> Usage:
    if not raw:
        return Usage()
    return Usage.from_counts(
        raw.get("prompt_tokens"), raw.get("completion_tokens"), raw.get("total_tokens")
    )
