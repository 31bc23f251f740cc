"""
Database engine configuration.

One process-wide engine, created lazily from settings. SQLite (the default
and the test backend) gets foreign-key enforcement switched on so chat
deletion cascades to messages the same way it does on PostgreSQL.
"""

from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from gateway.config import get_settings
from gateway.core import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _create_sqlite_engine(database_url: str, echo: bool) -> Engine:
    in_memory = database_url in _IN_MEMORY_URLS
    if not in_memory:
        db_dir = Path(database_url.replace("sqlite:///", "")).parent
        if not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Created database directory", data={"path": str(db_dir)})

    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},  # sessions cross threadpool workers
        # a single shared connection keeps an in-memory database alive
        poolclass=StaticPool if in_memory else None,
        echo=echo,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine

    if _engine is not None:
        return _engine

    settings = get_settings()
    if settings.is_sqlite:
        _engine = _create_sqlite_engine(settings.database_url, settings.debug)
    else:
        _engine = create_engine(
            settings.database_url,
            echo=settings.debug,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
        )

    logger.info("Database engine created", data={"dialect": _engine.dialect.name})
    return _engine


def verify_database_connection() -> bool:
    """Run ``SELECT 1``; False when the database cannot be reached."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database connection failed", data={"error": str(exc)})
        return False
    return True


def dispose_engine() -> None:
    """Dispose of the engine and release all connections."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database engine disposed")
