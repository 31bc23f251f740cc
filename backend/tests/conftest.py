"""Shared fixtures: in-memory database, credential store, model/chat factories, scripted handle."""

from __future__ import annotations

import base64
import os

# Must be set before gateway settings are first read.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENCRYPTION_KEY"] = base64.b64encode(b"0123456789abcdef0123456789abcdef").decode()

import asyncio  # noqa: E402
from collections.abc import AsyncIterator, Iterator  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from gateway.auth import AesGcmCredentialStore, store_api_key  # noqa: E402
from gateway.config import get_settings  # noqa: E402
from gateway.db import Base, get_engine, get_session_factory  # noqa: E402
from gateway.db.models import AIModel, Chat  # noqa: E402
from gateway.db.repositories import create_chat, create_model  # noqa: E402
from gateway.providers import (  # noqa: E402
    GenerationResult,
    GenerationSettings,
    ModelHandle,
    TextStream,
    Usage,
)
from gateway.services import CompletionService, ModelConfigResolver  # noqa: E402

TEST_USER = "user-1"
OTHER_USER = "user-2"


class FakeModel(ModelHandle):
    """Scripted handle: yields each string, raises each exception, ``None`` blocks forever."""

    def __init__(self, script=(), result: GenerationResult | None = None, error=None):
        self.model_id = "fake"
        self.script = list(script)
        self.result = result or GenerationResult(text="Hello", usage=Usage.from_counts(3, 2))
        self.error = error
        self.closed = False
        self.calls: list[GenerationSettings] = []

    async def aclose(self) -> None:
        self.closed = True

    async def generate_text(self, messages, settings):
        self.calls.append(settings)
        if self.error is not None:
            raise self.error
        return self.result

    def stream_text(self, messages, settings) -> TextStream:
        self.calls.append(settings)

        async def produce(stream: TextStream) -> AsyncIterator[str]:
            for step in self.script:
                if step is None:
                    await asyncio.Event().wait()
                if isinstance(step, Exception):
                    raise step
                yield step
            stream.usage = Usage.from_counts(4, len(self.script))
            stream.finish_reason = "stop"

        return TextStream(produce)


def make_service(credential_store, fake: FakeModel) -> CompletionService:
    return CompletionService(
        ModelConfigResolver(credential_store),
        model_builder=lambda config: fake,
        settings=get_settings(),
    )


@pytest.fixture(scope="session")
def credential_store() -> AesGcmCredentialStore:
    return AesGcmCredentialStore.from_settings(get_settings())


@pytest.fixture
def engine():
    engine = get_engine()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def db_session(engine) -> Iterator[Session]:
    session = get_session_factory()()
    yield session
    session.close()


@pytest.fixture
def make_model(db_session: Session, credential_store: AesGcmCredentialStore):
    """Factory creating a stored model (with an encrypted key unless api_key is None)."""

    def _make(
        *,
        user_id: str = TEST_USER,
        provider: str = "openai",
        model_id: str = "gpt-test",
        name: str = "Test Model",
        api_key: str | None = "sk-test-0123456789abcdefghijklmn",
        base_url: str | None = None,
        settings: dict[str, Any] | None = None,
    ) -> AIModel:
        api_key_id = None
        if api_key is not None:
            row = store_api_key(
                db_session, credential_store, user_id, provider=provider, plaintext=api_key
            )
            api_key_id = row.id
        return create_model(
            db_session,
            user_id,
            provider=provider,
            model_id=model_id,
            name=name,
            base_url=base_url,
            api_key_id=api_key_id,
            settings=settings,
        )

    return _make


@pytest.fixture
def chat(db_session: Session) -> Chat:
    return create_chat(db_session, TEST_USER, title="Test chat")
