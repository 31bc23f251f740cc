"""Resolution of stored model configurations into callable configs."""

from __future__ import annotations

from sqlalchemy.orm import Session

from gateway.auth.credentials import AesGcmCredentialStore, CredentialStore
from gateway.config import Settings, get_settings
from gateway.core import (
    CredentialDecryptionError,
    ErrorCode,
    NotFoundError,
    ValidationError,
    get_logger,
)
from gateway.db.repositories import get_user_api_key, get_user_model, model_settings
from gateway.providers import ProviderKind, ResolvedModelConfig

logger = get_logger(__name__)


class ModelConfigResolver:
    """Loads a model owned by the caller and decrypts its credential."""

    def __init__(
        self,
        credential_store: CredentialStore | None = None,
        settings: Settings | None = None,
    ):
        self._credential_store = credential_store
        self._settings = settings

    @property
    def credential_store(self) -> CredentialStore:
        """Store built from settings on first decrypt; keyless models never touch it."""
        if self._credential_store is None:
            self._credential_store = AesGcmCredentialStore.from_settings(
                self._settings or get_settings()
            )
        return self._credential_store

    def resolve(self, db: Session, model_id: str, owner_id: str) -> ResolvedModelConfig:
        """
        Resolve ``model_id`` for ``owner_id``. Read-only.

        Raises:
            NotFoundError: Model (or its credential) not owned by the caller.
            ValidationError: Non-Ollama model without a usable credential.
            CredentialDecryptionError: The stored credential could not be decrypted.
        """
        model = get_user_model(db, owner_id, model_id)
        if model is None:
            raise NotFoundError(
                "Model not found or you do not have permission to use it",
                code=ErrorCode.MODEL_CONFIG_NOT_FOUND,
            )

        try:
            provider = ProviderKind(model.provider)
        except ValueError:
            raise ValidationError(
                f"Unsupported provider: {model.provider}",
                details={"model_id": model.id},
            ) from None

        api_key: str | None = None
        if model.api_key_id:
            api_key = self._decrypt_key(db, owner_id, model.api_key_id)
            if not api_key and provider != ProviderKind.OLLAMA:
                raise self._missing_key(model.name)
        elif provider != ProviderKind.OLLAMA:
            raise self._missing_key(model.name)

        return ResolvedModelConfig(
            id=model.id,
            owner_id=owner_id,
            provider=provider,
            provider_model_id=model.model_id,
            name=model.name,
            base_url=model.base_url or None,
            api_key=api_key or None,
            settings=model_settings(model),
        )

    def _decrypt_key(self, db: Session, owner_id: str, api_key_id: str) -> str:
        row = get_user_api_key(db, owner_id, api_key_id)
        if row is None:
            raise NotFoundError("API key not found", code=ErrorCode.API_KEY_NOT_FOUND)
        try:
            return self.credential_store.decrypt(row.encrypted_key)
        except Exception as exc:
            logger.error(
                "Credential decryption failed",
                data={"api_key_id": api_key_id, "error_type": type(exc).__name__},
            )
            raise CredentialDecryptionError() from exc

    @staticmethod
    def _missing_key(model_name: str) -> ValidationError:
        return ValidationError(
            f'Model "{model_name}" is missing an API key. '
            "Please add an API Key in Settings and assign it to this model.",
            code=ErrorCode.API_KEY_MISSING,
        )
