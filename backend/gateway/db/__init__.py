"""Database models, engine, and session management."""

from gateway.db.base import Base, TimestampMixin
from gateway.db.engine import dispose_engine, get_engine, verify_database_connection
from gateway.db.models import AIModel, ApiKey, Chat, Message
from gateway.db.session import get_db, get_db_factory, get_session_factory

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Engine
    "get_engine",
    "verify_database_connection",
    "dispose_engine",
    # Session
    "get_db",
    "get_db_factory",
    "get_session_factory",
    # Models
    "AIModel",
    "ApiKey",
    "Chat",
    "Message",
]
