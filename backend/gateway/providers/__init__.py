"""Provider adapters and the model handle factory."""

from gateway.providers.anthropic import AnthropicModel
from gateway.providers.base import (
    ChatMessage,
    FinishReason,
    GenerationResult,
    GenerationSettings,
    ModelHandle,
    ProviderKind,
    ResolvedModelConfig,
    TextStream,
    Usage,
)
from gateway.providers.factory import build_model
from gateway.providers.google import GoogleModel
from gateway.providers.http_client import (
    ProviderConnectionError,
    ProviderRequestError,
    ProviderResponseError,
    ProviderStreamError,
    sanitize_base_url,
)
from gateway.providers.openai_compat import OpenAICompatModel

__all__ = [
    "AnthropicModel",
    "ChatMessage",
    "FinishReason",
    "GenerationResult",
    "GenerationSettings",
    "GoogleModel",
    "ModelHandle",
    "OpenAICompatModel",
    "ProviderConnectionError",
    "ProviderKind",
    "ProviderRequestError",
    "ProviderResponseError",
    "ProviderStreamError",
    "ResolvedModelConfig",
    "TextStream",
    "Usage",
    "build_model",
    "sanitize_base_url",
]
