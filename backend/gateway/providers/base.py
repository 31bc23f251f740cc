"""
Base provider interface.

Defines the contract every model handle implements, whichever vendor API
sits behind it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import httpx


class ProviderKind(str, Enum):
    """Supported provider types."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    GROQ = "groq"
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"
    OTHER = "other"


class FinishReason(str, Enum):
    """Normalized reasons a generation ended."""

    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content-filter"
    TOOL_CALLS = "tool-calls"
    ERROR = "error"
    OTHER = "other"


def normalize_finish_reason(raw: str | None, mapping: dict[str, FinishReason]) -> str | None:
    """Map a vendor finish reason onto the normalized set."""
    if raw is None:
        return None
    return mapping.get(raw, FinishReason.OTHER).value


@dataclass
class ChatMessage:
    """A single chat message."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class GenerationSettings:
    """Sampling parameters; None means "let the provider decide"."""

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None


@dataclass
class Usage:
    """Token counts as reported by the provider."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_counts(
        cls,
        prompt_tokens: int | None,
        completion_tokens: int | None,
        total_tokens: int | None = None,
    ) -> Usage:
        if total_tokens is None and prompt_tokens is not None and completion_tokens is not None:
            total_tokens = prompt_tokens + completion_tokens
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        )

    def to_dict(self) -> dict[str, int | None]:
        return asdict(self)


@dataclass
class GenerationResult:
    """Complete (non-streaming) generation."""

    text: str
    usage: Usage = field(default_factory=Usage)
    finish_reason: str | None = None
    response: dict[str, Any] = field(default_factory=dict)


class TextStream:
    """
    Async iterator of text chunks from a single streamed generation.

    ``usage`` and ``finish_reason`` are filled in by the adapter as the
    upstream reports them and are final once iteration is exhausted.
    """

    def __init__(self, produce: Callable[[TextStream], AsyncIterator[str]]):
        self.usage = Usage()
        self.finish_reason: str | None = None
        self._chunks = produce(self)

    def __aiter__(self) -> TextStream:
        return self

    async def __anext__(self) -> str:
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        """Close the upstream connection if it is still open."""
        await self._chunks.aclose()


class ModelHandle(ABC):
    """
    Abstract base class for callable models.

    Building a handle only prepares an HTTP client; no request is sent
    until ``generate_text`` or ``stream_text`` is used.
    """

    provider: ProviderKind

    def __init__(self, model_id: str, client: httpx.AsyncClient):
        self.model_id = model_id
        self.client = client

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        await self.client.aclose()

    @abstractmethod
    async def generate_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> GenerationResult:
        """
        Send a request and wait for the complete response.

        Raises:
            ProviderRequestError: If the provider returns an error status
            ProviderConnectionError: If the provider cannot be reached
        """
        ...

    @abstractmethod
    def stream_text(
        self, messages: list[ChatMessage], settings: GenerationSettings
    ) -> TextStream:
        """
        Start a streamed generation.

        The request is sent lazily on first iteration.
        """
        ...


@dataclass
class ResolvedModelConfig:
    """Everything needed to build a handle for one stored model."""

    id: str
    owner_id: str
    provider: ProviderKind
    provider_model_id: str
    name: str
    base_url: str | None = None
    api_key: str | None = field(default=None, repr=False)
    settings: dict[str, Any] = field(default_factory=dict)
