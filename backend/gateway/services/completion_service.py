"""Completion orchestration: batch completions and streamed turns with persistence."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from gateway.config import Settings, get_settings
from gateway.core import (
    AppError,
    ErrorCode,
    NotFoundError,
    ValidationError,
    get_logger,
    stream_id_ctx,
)
from gateway.core.metrics import metrics
from gateway.db.repositories import create_message, get_user_chat, touch_chat
from gateway.providers import (
    ChatMessage,
    FinishReason,
    GenerationResult,
    GenerationSettings,
    ModelHandle,
    ResolvedModelConfig,
    TextStream,
    Usage,
    build_model,
)
from gateway.services.error_classifier import classify, to_completion_error
from gateway.services.message_lifecycle import MessageLifecycle, persist_message_once
from gateway.services.model_config import ModelConfigResolver

logger = get_logger(__name__)

# name -> (type, minimum, maximum)
SETTING_RANGES: dict[str, tuple[type, float, float]] = {
    "temperature": (float, 0.0, 2.0),
    "max_tokens": (int, 1, 1_000_000),
    "top_p": (float, 0.0, 1.0),
    "top_k": (int, 0, 100),
    "frequency_penalty": (float, -2.0, 2.0),
    "presence_penalty": (float, -2.0, 2.0),
}


@dataclass
class TextDeltaEvent:
    text: str
    type: str = field(default="text-delta", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class FinishEvent:
    finish_reason: str | None = None
    usage: Usage | None = None
    type: str = field(default="finish", init=False)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.finish_reason is not None:
            payload["finish_reason"] = self.finish_reason
        if self.usage is not None:
            payload["usage"] = self.usage.to_dict()
        return payload


@dataclass
class ErrorEvent:
    code: str
    message: str
    type: str = field(default="error", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "error": {"code": self.code, "message": self.message}}


StreamEvent = TextDeltaEvent | FinishEvent | ErrorEvent


@dataclass
class ModelValidation:
    """Outcome of a one-message test call against a stored model."""

    valid: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "message": self.message}



class _StreamEnd:
    """Queue marker: upstream finished normally."""


@dataclass
class _StreamFailure:
    """Queue marker: upstream raised."""

    error: Exception


_END = _StreamEnd()


def build_generation_settings(
    stored: dict[str, Any] | None, overrides: dict[str, Any] | None
) -> GenerationSettings:
    """
    Merge a model's stored defaults with per-request overrides.

    Request values win key by key; unknown keys and None values are ignored.

    Raises:
        ValidationError: A value is of the wrong type or out of range.
    """
    merged: dict[str, Any] = {}
    for source in (stored or {}, overrides or {}):
        for name, value in source.items():
            if name in SETTING_RANGES and value is not None:
                merged[name] = value

    for name, value in merged.items():
        kind, minimum, maximum = SETTING_RANGES[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Setting '{name}' must be a number")
        if kind is int and int(value) != value:
            raise ValidationError(f"Setting '{name}' must be an integer")
        if not minimum <= value <= maximum:
            raise ValidationError(
                f"Setting '{name}' must be between {minimum} and {maximum}",
                details={"setting": name, "value": value},
            )
        merged[name] = kind(value)

    return GenerationSettings(**merged)


def _turn_metadata(
    config: ResolvedModelConfig, usage: Usage | None, finish_reason: str | None
) -> dict[str, Any]:
    return {
        "model": config.provider_model_id,
        "tokens": usage.total_tokens if usage else None,
        "finish_reason": finish_reason,
    }


class CompletionService:
    """Resolves a model, calls its provider, and ties persistence to the outcome."""

    def __init__(
        self,
        resolver: ModelConfigResolver,
        model_builder: Callable[[ResolvedModelConfig], ModelHandle] = build_model,
        settings: Settings | None = None,
    ):
        self.resolver = resolver
        self.model_builder = model_builder
        self.settings = settings or get_settings()

    def _preflight(
        self,
        db: Session,
        owner_id: str,
        model_id: str,
        messages: list[ChatMessage],
        chat_id: str | None,
        overrides: dict[str, Any] | None,
    ) -> tuple[ResolvedModelConfig, GenerationSettings]:
        if not messages:
            raise ValidationError("At least one message is required")
        for message in messages:
            if message.role not in ("system", "user", "assistant"):
                raise ValidationError(f"Unsupported message role: {message.role}")
            if not message.content:
                raise ValidationError("Message content must not be empty")

        config = self.resolver.resolve(db, model_id, owner_id)
        if chat_id is not None and get_user_chat(db, owner_id, chat_id) is None:
            raise NotFoundError("Chat not found", code=ErrorCode.CHAT_NOT_FOUND)
        return config, build_generation_settings(config.settings, overrides)

    async def complete(
        self,
        db: Session,
        owner_id: str,
        model_id: str,
        messages: list[ChatMessage],
        chat_id: str | None = None,
        settings: dict[str, Any] | None = None,
    ) -> GenerationResult:
        """
        Generate a full response in one call.

        When ``chat_id`` is given the trailing user message and the
        assistant reply are appended to the chat.

        Raises:
            NotFoundError / ValidationError / InternalError: Preflight failures.
            CompletionError: Any provider or chat-write failure, classified.
        """
        config, generation = self._preflight(
            db, owner_id, model_id, messages, chat_id, settings
        )
        handle = self.model_builder(config)
        try:
            result = await handle.generate_text(messages, generation)
        except AppError:
            raise
        except Exception as exc:
            raise to_completion_error(classify(exc)) from exc
        finally:
            await handle.aclose()

        metrics.increment("completions_total")
        logger.info(
            "Completion finished",
            data={
                "model_id": config.id,
                "provider": config.provider.value,
                "finish_reason": result.finish_reason,
                "total_tokens": result.usage.total_tokens,
            },
        )

        if chat_id is not None:
            try:
                last = messages[-1]
                if last.role == "user":
                    persist_message_once(db, chat_id, "user", last.content)
                create_message(
                    db,
                    chat_id,
                    "assistant",
                    result.text,
                    metadata=_turn_metadata(config, result.usage, result.finish_reason),
                )
                touch_chat(db, chat_id)
            except AppError:
                raise
            except Exception as exc:
                db.rollback()
                raise to_completion_error(classify(exc)) from exc

        return result

    async def validate_model(
        self, db: Session, owner_id: str, model_id: str
    ) -> ModelValidation:
        """
        Check that a stored model can answer a one-word prompt.

        Configuration and provider failures are reported in the result
        rather than raised; nothing is persisted.
        """
        messages = [ChatMessage(role="user", content="Test")]
        try:
            config, generation = self._preflight(db, owner_id, model_id, messages, None, None)
            handle = self.model_builder(config)
            try:
                await handle.generate_text(messages, generation)
            finally:
                await handle.aclose()
        except AppError as exc:
            code, message = exc.code.value, exc.message
        except Exception as exc:
            # classified for logs and metrics; the caller gets a generic answer
            code = classify(exc).code.value
            message = "Model configuration is invalid"
        else:
            logger.info("Model validated", data={"model_id": model_id})
            return ModelValidation(valid=True, message="Model is properly configured")

        logger.info("Model validation failed", data={"model_id": model_id, "code": code})
        return ModelValidation(valid=False, message=message)

    async def stream(
        self,
        db: Session,
        owner_id: str,
        model_id: str,
        messages: list[ChatMessage],
        chat_id: str | None = None,
        settings: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Start a streamed turn.

        Preflight runs before this returns, so configuration and ownership
        errors raise here; everything after surfaces as stream events,
        ending with exactly one ``finish`` or ``error``.
        """
        config, generation = self._preflight(
            db, owner_id, model_id, messages, chat_id, settings
        )
        return self._stream_events(db, config, messages, chat_id, generation)

    async def _stream_events(
        self,
        db: Session,
        config: ResolvedModelConfig,
        messages: list[ChatMessage],
        chat_id: str | None,
        generation: GenerationSettings,
    ) -> AsyncIterator[StreamEvent]:
        stream_id = str(uuid.uuid4())
        stream_token = stream_id_ctx.set(stream_id)
        started = time.monotonic()
        metrics.increment("streams_total")
        metrics.adjust_gauge("active_streams", 1)

        lifecycle = MessageLifecycle(db, chat_id) if chat_id is not None else None
        chunks: list[str] = []
        handle: ModelHandle | None = None
        text_stream: TextStream | None = None
        producer: asyncio.Task | None = None
        settled = False

        logger.info(
            "Stream started",
            data={"model_id": config.id, "provider": config.provider.value, "chat_id": chat_id},
        )
        try:
            handle = self.model_builder(config)
            if lifecycle is not None:
                last = messages[-1]
                if last.role == "user":
                    persist_message_once(db, lifecycle.chat_id, "user", last.content)
                lifecycle.create_placeholder()

            text_stream = handle.stream_text(messages, generation)
            queue: asyncio.Queue = asyncio.Queue(maxsize=self.settings.stream_queue_size)
            producer = asyncio.create_task(_produce(text_stream, queue))

            while True:
                item = await queue.get()
                if item is _END:
                    break
                if isinstance(item, _StreamFailure):
                    raise item.error
                chunks.append(item)
                yield TextDeltaEvent(text=item)

            usage = text_stream.usage
            finish_reason = text_stream.finish_reason
            if lifecycle is not None:
                lifecycle.settle("".join(chunks), _turn_metadata(config, usage, finish_reason))
            settled = True
            logger.info(
                "Stream finished",
                data={"finish_reason": finish_reason, "total_tokens": usage.total_tokens},
            )
            yield FinishEvent(finish_reason=finish_reason, usage=usage)

        except Exception as exc:
            if isinstance(exc, AppError):
                code, message = exc.code.value, exc.message
            else:
                classification = classify(exc)
                code, message = classification.code.value, classification.user_message
            if lifecycle is not None:
                lifecycle.settle(
                    "".join(chunks),
                    _turn_metadata(config, None, FinishReason.ERROR.value),
                )
            settled = True
            yield ErrorEvent(code=code, message=message)

        finally:
            if not settled:
                # consumer went away mid-stream
                logger.info("Stream cancelled", data={"chars": sum(map(len, chunks))})
                if lifecycle is not None:
                    lifecycle.settle(
                        "".join(chunks),
                        _turn_metadata(config, None, FinishReason.OTHER.value),
                    )
            metrics.adjust_gauge("active_streams", -1)
            metrics.observe("stream_duration_seconds", time.monotonic() - started)
            stream_id_ctx.reset(stream_token)
            await _shutdown(producer, text_stream, handle)


async def _produce(text_stream: TextStream, queue: asyncio.Queue) -> None:
    """Pump upstream chunks into the queue, ending with exactly one marker."""
    try:
        async for chunk in text_stream:
            await queue.put(chunk)
    except Exception as exc:
        await queue.put(_StreamFailure(exc))
    else:
        await queue.put(_END)


async def _shutdown(
    producer: asyncio.Task | None,
    text_stream: TextStream | None,
    handle: ModelHandle | None,
) -> None:
    if producer is not None and not producer.done():
        producer.cancel()
        await asyncio.wait({producer})
    if text_stream is not None:
        try:
            await text_stream.aclose()
        except Exception as exc:
            logger.warning("Error closing upstream stream", data={"error": type(exc).__name__})
    if handle is not None:
        await handle.aclose()
