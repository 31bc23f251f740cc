"""Google Gemini ``generateContent`` adapter."""

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
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.CONTENT_FILTER,
    "BLOCKLIST": FinishReason.CONTENT_FILTER,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    "SPII": FinishReason.CONTENT_FILTER,
    "MALFORMED_FUNCTION_CALL": FinishReason.ERROR,
}

# Gemini calls the assistant "model"
_ROLES = {"user": "user", "assistant": "model"}


class GoogleModel(ModelHandle):
    """Model served by the Generative Language API."""

    provider = ProviderKind.GOOGLE

    def __init__(
        self,
        model_id: str,
        base_url: str,
        api_key: str,
        timeout: int,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            model_id,
            create_http_client(
                base_url=base_url,
                timeout_seconds=timeout,
                headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
                transport=transport,
            ),
        )

    @property
    def _model_path(self) -> str:
        name = self.model_id if self.model_id.startswith("models/") else f"models/{self.model_id}"
        return f"v1beta/{name}"

    def _payload(self, messages: list[ChatMessage], settings: GenerationSettings) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [
                {"role": _ROLES.get(m.role, "user"), "parts": [{"text": m.content}]}
                for m in messages
                if m.role != "system"
            ],
        }
        system_parts = [{"text": m.content} for m in messages if m.role == "system"]
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}

        config: dict[str, Any] = {}
        if settings.temperature is not None:
            config["temperature"] = settings.temperature
        if settings.max_tokens is not None:
            config["maxOutputTokens"] = settings.max_tokens
        if settings.top_p is not None:
            config["topP"] = settings.top_p
        if settings.top_k is not None:
            config["topK"] = settings.top_k
        if settings.frequency_penalty is not None:
            config["frequencyPenalty"] = settings.frequency_penalty
        if settings.presence_penalty is not None:
            config["presencePenalty"] = settings.presence_penalty
        if config:
            payload["generationConfig"] = config
        return payload

    async def generate_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> GenerationResult:
        response = await send_request(
            self.client,
            self.provider.value,
            "POST",
            f"{self._model_path}:generateContent",
            json=self._payload(messages, settings),
        )
        data = parse_json(response, self.provider.value)
        if not isinstance(data, dict):
            raise ProviderResponseError(self.provider.value, response.text)
        _raise_if_blocked(data, self.provider.value)

        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderResponseError(self.provider.value, response.text)
        candidate = candidates[0]
        return GenerationResult(
            text=_candidate_text(candidate),
            usage=_usage(data.get("usageMetadata")),
            finish_reason=normalize_finish_reason(candidate.get("finishReason"), FINISH_REASONS),
            response={
                "id": data.get("responseId"),
                "model": data.get("modelVersion", self.model_id),
            },
        )

    def stream_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> TextStream:
        payload = self._payload(messages, settings)

        async def produce(stream: TextStream) -> AsyncIterator[str]:
            response = await open_stream(
                self.client,
                self.provider.value,
                "POST",
                f"{self._model_path}:streamGenerateContent",
                params={"alt": "sse"},
                json=payload,
            )
            try:
                async for _event, data in iter_sse(response):
                    chunk = load_event(data, self.provider.value)
                    _raise_if_blocked(chunk, self.provider.value)
                    if chunk.get("usageMetadata"):
                        stream.usage = _usage(chunk["usageMetadata"])
                    for candidate in chunk.get("candidates") or []:
                        if candidate.get("finishReason"):
                            stream.finish_reason = normalize_finish_reason(
                                candidate["finishReason"], FINISH_REASONS
                            )
                        text = _candidate_text(candidate)
                        if text:
                            yield text
            finally:
                await response.aclose()

        return TextStream(produce)


def _candidate_text(candidate: dict[str, Any]) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if not part.get("thought"))


def _usage(raw: dict[str, Any] | None) -> Usage:
    if not raw:
        return Usage()
    return Usage.from_counts(
        raw.get("promptTokenCount"),
        raw.get("candidatesTokenCount"),
        raw.get("totalTokenCount"),
    )


def _raise_if_blocked(data: dict[str, Any], provider: str) -> None:
    if "error" in data:
        error = data["error"] or {}
        raise ProviderStreamError(
            provider, f"{error.get('status', '')} {error.get('message', '')}".strip()
        )
    block_reason = (data.get("promptFeedback") or {}).get("blockReason")
    if block_reason:
        raise ProviderStreamError(provider, f"prompt blocked by safety filter ({block_reason})")
