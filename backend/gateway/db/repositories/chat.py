"""Repository helpers for chats and messages."""

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from gateway.db.models import Chat, Message


def create_chat(
    db: Session,
    user_id: str,
    title: str | None = None,
    model_id: str | None = None,
) -> Chat:
    """Create a new chat for the given user."""
    chat = Chat(
        user_id=user_id,
        title=title.strip() if title and title.strip() else "New Chat",
        model_id=model_id,
    )
    db.add(chat)
    db.commit()
    db.refresh(chat)
    return chat


def get_user_chat(db: Session, user_id: str, chat_id: str) -> Chat | None:
    """Fetch chat owned by user."""
    stmt = select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def touch_chat(db: Session, chat_id: str) -> None:
    """Bump the chat's updated_at to reflect recent activity."""
    chat = db.get(Chat, chat_id)
    if chat is None:
        return
    chat.updated_at = datetime.now(UTC)
    db.commit()


def create_message(
    db: Session,
    chat_id: str,
    role: str,
    content: str,
    *,
    metadata: dict[str, Any] | None = None,
) -> Message:
    """Insert a chat message."""
    message = Message(
        chat_id=chat_id,
        role=role,
        content=content,
        meta=json.dumps(metadata) if metadata is not None else None,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def get_message(db: Session, message_id: str) -> Message | None:
    """Fetch a single message by id."""
    return db.get(Message, message_id)


def update_message(
    db: Session,
    message_id: str,
    content: str,
    *,
    metadata: dict[str, Any] | None = None,
) -> Message | None:
    """Overwrite a message's content and metadata."""
    message = db.get(Message, message_id)
    if message is None:
        return None
    message.content = content
    message.meta = json.dumps(metadata) if metadata is not None else None
    db.commit()
    db.refresh(message)
    return message


def delete_message(db: Session, message_id: str) -> bool:
    """Delete a message by id."""
    message = db.get(Message, message_id)
    if message is None:
        return False
    db.delete(message)
    db.commit()
    return True


def get_chat_messages(db: Session, chat_id: str) -> list[Message]:
    """Get all messages for a chat ordered by creation time."""
    stmt = (
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


def get_latest_message_by_role(db: Session, chat_id: str, role: str) -> Message | None:
    """Get the most recently created message with the given role."""
    stmt = (
        select(Message)
        .where(Message.chat_id == chat_id, Message.role == role)
        .order_by(Message.created_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def message_metadata(message: Message) -> dict[str, Any] | None:
    """Decode a message's stored metadata."""
    if not message.meta:
        return None
    try:
        data = json.loads(message.meta)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
