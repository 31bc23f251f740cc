"""
SQLAlchemy ORM models.

Defines the tables the completion gateway reads and writes: stored
credentials, model configurations, chats, and chat messages.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gateway.db.base import Base, TimestampMixin


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


class ApiKey(Base, TimestampMixin):
    """Encrypted provider credential owned by a user."""

    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    encrypted_key: Mapped[str] = mapped_column(Text, nullable=False)
    key_last4: Mapped[str] = mapped_column(String(4), nullable=False)

    __table_args__ = (
        Index("ix_api_keys_user_id", "user_id"),
        Index("ix_api_keys_provider", "provider"),
    )


class AIModel(Base, TimestampMixin):
    """A user's stored model configuration."""

    __tablename__ = "models"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # openai, anthropic, google, groq, ollama, openrouter, other
    model_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    api_key_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("api_keys.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    settings: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON string

    api_key: Mapped[ApiKey | None] = relationship()

    __table_args__ = (
        Index("ix_models_user_id", "user_id"),
        Index("ix_models_provider", "provider"),
        Index("ix_models_is_active", "is_active"),
    )


class Chat(Base, TimestampMixin):
    """Chat conversation model."""

    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="New Chat")
    model_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    messages: Mapped[list[Message]] = relationship(
        back_populates="chat", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_chats_user_id", "user_id"),
        Index("ix_chats_updated_at", "updated_at"),
    )


class Message(Base):
    """Chat message model."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    chat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # system, user, assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # JSON string: {model, tokens, finish_reason}
    meta: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC), nullable=False
    )

    chat: Mapped[Chat] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_messages_chat_id", "chat_id"),
        Index("ix_messages_created_at", "created_at"),
    )
