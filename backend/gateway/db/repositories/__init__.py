"""Database repositories for data access."""

from gateway.db.repositories.api_key import create_api_key, get_user_api_key
from gateway.db.repositories.chat import (
    create_chat,
    create_message,
    delete_message,
    get_chat_messages,
    get_latest_message_by_role,
    get_message,
    get_user_chat,
    message_metadata,
    touch_chat,
    update_message,
)
from gateway.db.repositories.model import (
    create_model,
    get_user_model,
    list_user_models,
    model_settings,
    set_active_model,
)

__all__ = [
    # API keys
    "create_api_key",
    "get_user_api_key",
    # Models
    "create_model",
    "get_user_model",
    "list_user_models",
    "model_settings",
    "set_active_model",
    # Chats
    "create_chat",
    "get_user_chat",
    "touch_chat",
    "get_chat_messages",
    "create_message",
    "get_message",
    "update_message",
    "delete_message",
    "get_latest_message_by_role",
    "message_metadata",
]
