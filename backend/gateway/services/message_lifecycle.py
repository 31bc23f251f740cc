"""
Persistence of the messages that make up one streamed chat turn.

An assistant placeholder is inserted before the provider is called and
then either finalized with the generated text or deleted, exactly once.
Write failures while settling are logged and rolled back rather than
raised so they never hide the failure that ended the stream.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gateway.core import get_logger
from gateway.db.models import Message
from gateway.db.repositories import (
    create_message,
    delete_message,
    get_latest_message_by_role,
    touch_chat,
    update_message,
)

logger = get_logger(__name__)


class PlaceholderState(str, Enum):
    NO_PLACEHOLDER = "no_placeholder"
    PLACEHOLDER_CREATED = "placeholder_created"
    FINALIZED = "finalized"
    ROLLED_BACK = "rolled_back"


class LifecycleError(RuntimeError):
    """A lifecycle transition was attempted from the wrong state."""


def persist_message_once(db: Session, chat_id: str, role: str, content: str) -> Message | None:
    """
    Append a message unless it repeats the latest message of the same role.

    Returns the new message, or None when the insert was skipped.
    """
    latest = get_latest_message_by_role(db, chat_id, role)
    if latest is not None and latest.content == content:
        logger.debug(
            "Skipping duplicate message",
            data={"chat_id": chat_id, "role": role, "message_id": latest.id},
        )
        return None
    return create_message(db, chat_id, role, content)


class MessageLifecycle:
    """State machine for the assistant placeholder of one streamed turn."""

    def __init__(self, db: Session, chat_id: str):
        self.db = db
        self.chat_id = chat_id
        self.state = PlaceholderState.NO_PLACEHOLDER
        self.message_id: str | None = None

    def _require(self, expected: PlaceholderState, action: str) -> None:
        if self.state != expected:
            raise LifecycleError(
                f"Cannot {action} placeholder in state {self.state.value}"
            )

    def create_placeholder(self) -> Message:
        """Insert the empty assistant message. Write errors propagate."""
        self._require(PlaceholderState.NO_PLACEHOLDER, "create")
        message = create_message(self.db, self.chat_id, "assistant", "")
        self.message_id = message.id
        self.state = PlaceholderState.PLACEHOLDER_CREATED
        return message

    def finalize(self, content: str, metadata: dict[str, Any]) -> bool:
        """Write the final text and metadata, then bump the chat's activity time."""
        self._require(PlaceholderState.PLACEHOLDER_CREATED, "finalize")
        self.state = PlaceholderState.FINALIZED
        try:
            update_message(self.db, self.message_id, content, metadata=metadata)
            touch_chat(self.db, self.chat_id)
        except SQLAlchemyError as exc:
            self._log_write_failure("finalize", exc)
            return False
        return True

    def rollback(self) -> bool:
        """Delete the placeholder."""
        self._require(PlaceholderState.PLACEHOLDER_CREATED, "roll back")
        self.state = PlaceholderState.ROLLED_BACK
        try:
            delete_message(self.db, self.message_id)
        except SQLAlchemyError as exc:
            self._log_write_failure("rollback", exc)
            return False
        return True

    def settle(self, content: str, metadata: dict[str, Any]) -> PlaceholderState:
        """
        Finalize when any text was produced, otherwise roll back.

        No-op unless a placeholder is pending.
        """
        if self.state != PlaceholderState.PLACEHOLDER_CREATED:
            return self.state
        if content:
            self.finalize(content, metadata)
        else:
            self.rollback()
        return self.state

    def _log_write_failure(self, action: str, exc: Exception) -> None:
        logger.error(
            f"Placeholder {action} failed",
            exc_info=exc,
            data={"chat_id": self.chat_id, "message_id": self.message_id},
        )
        self.db.rollback()
