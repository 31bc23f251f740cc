"""Anthropic Messages API adapter."""

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
    ProviderStreamError,
    create_http_client,
    iter_sse,
    load_event,
    open_stream,
    parse_json,
    send_request,
)

FINISH_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
    "refusal": FinishReason.CONTENT_FILTER,
}


def _merge_turns(messages: list[ChatMessage]) -> list[dict[str, str]]:
    """Conversation turns with system messages dropped and same-role neighbours joined."""
    turns: list[dict[str, str]] = []
    for message in messages:
        if message.role == "system":
            continue
        if turns and turns[-1]["role"] == message.role:
            turns[-1]["content"] += "\n\n" + message.content
        else:
            turns.append({"role": message.role, "content": message.content})
    return turns


class AnthropicModel(ModelHandle):
    """Model served by Anthropic's ``/v1/messages`` endpoint."""

    provider = ProviderKind.ANTHROPIC

    def __init__(
        self,
        model_id: str,
        base_url: str,
        api_key: str,
        timeout: int,
        api_version: str,
        default_max_tokens: int,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.default_max_tokens = default_max_tokens
        super().__init__(
            model_id,
            create_http_client(
                base_url=base_url,
                timeout_seconds=timeout,
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": api_key,
                    "anthropic-version": api_version,
                },
                transport=transport,
            ),
        )

    def _payload(
        self, messages: list[ChatMessage], settings: GenerationSettings, stream: bool
    ) -> dict[str, Any]:
        system_parts = [m.content for m in messages if m.role == "system"]
        payload: dict[str, Any] = {
            "model": self.model_id,
            "messages": _merge_turns(messages),
            "max_tokens": settings.max_tokens or self.default_max_tokens,
            "stream": stream,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        # frequency/presence penalties are not supported by this API
        if settings.temperature is not None:
            payload["temperature"] = settings.temperature
        if settings.top_p is not None:
            payload["top_p"] = settings.top_p
        if settings.top_k is not None:
            payload["top_k"] = settings.top_k
        return payload

    async def generate_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> GenerationResult:
        response = await send_request(
            self.client,
            self.provider.value,
            "POST",
            "v1/messages",
            json=self._payload(messages, settings, stream=False),
        )
        data = parse_json(response, self.provider.value)
        if not isinstance(data, dict) or "content" not in data:
            raise ProviderResponseError(self.provider.value, response.text)

        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return GenerationResult(
            text=text,
            usage=Usage.from_counts(usage.get("input_tokens"), usage.get("output_tokens")),
            finish_reason=normalize_finish_reason(data.get("stop_reason"), FINISH_REASONS),
            response={"id": data.get("id"), "model": data.get("model", self.model_id)},
        )

    def stream_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> TextStream:
        payload = self._payload(messages, settings, stream=True)

        async def produce(stream: TextStream) -> AsyncIterator[str]:
            response = await open_stream(
                self.client, self.provider.value, "POST", "v1/messages", json=payload
            )
            prompt_tokens: int | None = None
            completion_tokens: int | None = None
            try:
                async for event, data in iter_sse(response):
                    chunk = load_event(data, self.provider.value)
                    kind = chunk.get("type") or event

                    if kind == "message_start":
                        usage = (chunk.get("message") or {}).get("usage") or {}
                        prompt_tokens = usage.get("input_tokens", prompt_tokens)
                        completion_tokens = usage.get("output_tokens", completion_tokens)
                    elif kind == "content_block_delta":
                        delta = chunk.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield delta["text"]
                    elif kind == "message_delta":
                        stop_reason = (chunk.get("delta") or {}).get("stop_reason")
                        if stop_reason:
                            stream.finish_reason = normalize_finish_reason(
                                stop_reason, FINISH_REASONS
                            )
                        usage = chunk.get("usage") or {}
                        completion_tokens = usage.get("output_tokens", completion_tokens)
                    elif kind == "error":
                        error = chunk.get("error") or {}
                        raise ProviderStreamError(
                            self.provider.value,
                            f"{error.get('type', 'error')}: {error.get('message', '')}",
                        )
                    elif kind == "message_stop":
                        break

                    stream.usage = Usage.from_counts(prompt_tokens, completion_tokens)
            finally:
                await response.aclose()

        return TextStream(produce)

