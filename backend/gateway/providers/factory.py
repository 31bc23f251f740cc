"""Build callable model handles from resolved model configurations."""

from __future__ import annotations

import httpx

from gateway.config import Settings, get_settings
from gateway.core import ValidationError, get_logger
from gateway.providers.anthropic import AnthropicModel
from gateway.providers.base import ModelHandle, ProviderKind, ResolvedModelConfig
from gateway.providers.google import GoogleModel
from gateway.providers.http_client import sanitize_base_url
from gateway.providers.openai_compat import OpenAICompatModel

logger = get_logger(__name__)


def build_model(
    config: ResolvedModelConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    settings: Settings | None = None,
) -> ModelHandle:
    """
    Create the handle for ``config``, dispatched on its provider.

    No request is sent; the handle only owns a configured HTTP client.

    Args:
        config: Resolved model configuration (credential already decrypted).
        transport: Optional transport override (tests use MockTransport).
        settings: Application settings; defaults to the cached instance.
    """
    settings = settings or get_settings()
    provider = ProviderKind(config.provider)
    base_url = sanitize_base_url(config.base_url)
    timeout = settings.provider_timeout_seconds
    handle: ModelHandle

    if provider in (ProviderKind.OPENAI, ProviderKind.OTHER):
        handle = OpenAICompatModel(
            provider=provider,
            model_id=config.provider_model_id,
            base_url=base_url or settings.openai_base_url,
            api_key=config.api_key,
            timeout=timeout,
            transport=transport,
        )
    elif provider == ProviderKind.GROQ:
        handle = OpenAICompatModel(
            provider=provider,
            model_id=config.provider_model_id,
            base_url=base_url or settings.groq_base_url,
            api_key=config.api_key,
            timeout=timeout,
            transport=transport,
        )
    elif provider == ProviderKind.OPENROUTER:
        handle = OpenAICompatModel(
            provider=provider,
            model_id=config.provider_model_id,
            base_url=base_url or settings.openrouter_base_url,
            api_key=config.api_key,
            timeout=timeout,
            transport=transport,
        )
    elif provider == ProviderKind.OLLAMA:
        handle = OpenAICompatModel(
            provider=provider,
            model_id=config.provider_model_id,
            base_url=base_url or settings.ollama_base_url,
            api_key=config.api_key or None,
            timeout=timeout,
            transport=transport,
        )
    elif provider == ProviderKind.ANTHROPIC:
        handle = AnthropicModel(
            model_id=config.provider_model_id,
            base_url=base_url or settings.anthropic_base_url,
            api_key=_require_key(config),
            timeout=timeout,
            api_version=settings.anthropic_api_version,
            default_max_tokens=settings.anthropic_default_max_tokens,
            transport=transport,
        )
    elif provider == ProviderKind.GOOGLE:
        handle = GoogleModel(
            model_id=config.provider_model_id,
            base_url=base_url or settings.google_base_url,
            api_key=_require_key(config),
            timeout=timeout,
            transport=transport,
        )
    else:  # pragma: no cover - enum is closed
        raise ValidationError(f"Unsupported provider: {provider.value}")

    logger.debug(
        "Model handle built",
        data={"provider": provider.value, "model": config.provider_model_id},
    )
    return handle


def _require_key(config: ResolvedModelConfig) -> str:
    if not config.api_key:
        raise ValidationError(f"API key is required for model {config.name}")
    return config.api_key
