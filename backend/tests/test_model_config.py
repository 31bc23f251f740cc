"""Tests for resolving stored model configurations."""

import pytest

from gateway.auth import store_api_key
from gateway.config import Settings
from gateway.core import (
    CredentialDecryptionError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from gateway.db.repositories import create_api_key, create_model
from gateway.providers import ProviderKind
from gateway.services import ModelConfigResolver

from conftest import OTHER_USER, TEST_USER

API_KEY = "sk-test-0123456789abcdefghijklmn"


class BlankCredentialStore:
    def encrypt(self, plaintext: str) -> str:
        return plaintext

    def decrypt(self, blob: str) -> str:
        return ""


@pytest.fixture
def resolver(credential_store) -> ModelConfigResolver:
    return ModelConfigResolver(credential_store)


def test_resolve_returns_decrypted_config(db_session, make_model, resolver) -> None:
    model = make_model(
        provider="anthropic",
        model_id="claude-test",
        name="Claude",
        base_url="https://proxy.example.com",
        settings={"temperature": 0.3},
    )

    config = resolver.resolve(db_session, model.id, TEST_USER)

    assert config.id == model.id
    assert config.owner_id == TEST_USER
    assert config.provider == ProviderKind.ANTHROPIC
    assert config.provider_model_id == "claude-test"
    assert config.name == "Claude"
    assert config.base_url == "https://proxy.example.com"
    assert config.api_key == API_KEY
    assert config.settings == {"temperature": 0.3}


def test_resolved_config_repr_hides_api_key(db_session, make_model, resolver) -> None:
    model = make_model()
    config = resolver.resolve(db_session, model.id, TEST_USER)
    assert API_KEY not in repr(config)


def test_unknown_model_is_not_found(db_session, resolver) -> None:
    with pytest.raises(NotFoundError) as exc:
        resolver.resolve(db_session, "missing", TEST_USER)
    assert exc.value.code == ErrorCode.MODEL_CONFIG_NOT_FOUND
    assert "permission" in exc.value.message


def test_model_of_another_user_is_not_found(db_session, make_model, resolver) -> None:
    model = make_model(user_id=OTHER_USER)
    with pytest.raises(NotFoundError) as exc:
        resolver.resolve(db_session, model.id, TEST_USER)
    assert exc.value.code == ErrorCode.MODEL_CONFIG_NOT_FOUND


def test_missing_key_is_rejected_for_hosted_providers(db_session, make_model, resolver) -> None:
    model = make_model(provider="openai", name="GPT", api_key=None)
    with pytest.raises(ValidationError) as exc:
        resolver.resolve(db_session, model.id, TEST_USER)
    assert exc.value.code == ErrorCode.API_KEY_MISSING
    assert exc.value.message.startswith('Model "GPT" is missing an API key.')


def test_ollama_works_without_key(db_session, make_model, resolver) -> None:
    model = make_model(provider="ollama", model_id="llama3", api_key=None)
    config = resolver.resolve(db_session, model.id, TEST_USER)
    assert config.provider == ProviderKind.OLLAMA
    assert config.api_key is None


def test_ollama_without_key_needs_no_encryption_key(db_session, make_model) -> None:
    model = make_model(provider="ollama", model_id="llama3", api_key=None)
    resolver = ModelConfigResolver(settings=Settings(encryption_key=""))

    config = resolver.resolve(db_session, model.id, TEST_USER)

    assert config.provider == ProviderKind.OLLAMA
    assert config.api_key is None


def test_stored_key_without_encryption_key_fails_decryption(db_session, make_model) -> None:
    model = make_model()
    resolver = ModelConfigResolver(settings=Settings(encryption_key=""))

    with pytest.raises(CredentialDecryptionError) as exc:
        resolver.resolve(db_session, model.id, TEST_USER)
    assert exc.value.code == ErrorCode.CREDENTIAL_DECRYPTION_FAILED


def test_empty_decrypted_key_is_missing(db_session, make_model) -> None:
    model = make_model(provider="google")
    resolver = ModelConfigResolver(BlankCredentialStore())
    with pytest.raises(ValidationError) as exc:
        resolver.resolve(db_session, model.id, TEST_USER)
    assert exc.value.code == ErrorCode.API_KEY_MISSING


def test_unsupported_provider_is_rejected(db_session, make_model, resolver) -> None:
    model = make_model(provider="mystery")
    with pytest.raises(ValidationError, match="Unsupported provider"):
        resolver.resolve(db_session, model.id, TEST_USER)


def test_key_owned_by_another_user_is_not_found(db_session, credential_store, resolver) -> None:
    foreign = store_api_key(
        db_session, credential_store, OTHER_USER, provider="openai", plaintext=API_KEY
    )
    model = create_model(
        db_session,
        TEST_USER,
        provider="openai",
        model_id="gpt-test",
        name="Borrowed",
        api_key_id=foreign.id,
    )
    with pytest.raises(NotFoundError) as exc:
        resolver.resolve(db_session, model.id, TEST_USER)
    assert exc.value.code == ErrorCode.API_KEY_NOT_FOUND


def test_undecryptable_key_raises_without_leaking(db_session, resolver, caplog) -> None:
    row = create_api_key(
        db_session,
        TEST_USER,
        provider="openai",
        encrypted_key="corrupted-blob",
        key_last4="blob",
    )
    model = create_model(
        db_session,
        TEST_USER,
        provider="openai",
        model_id="gpt-test",
        name="Broken",
        api_key_id=row.id,
    )
    with pytest.raises(CredentialDecryptionError) as exc:
        resolver.resolve(db_session, model.id, TEST_USER)
    assert exc.value.code == ErrorCode.CREDENTIAL_DECRYPTION_FAILED
    assert exc.value.status_code == 500
    assert "corrupted-blob" not in caplog.text
