"""
Database session management.

Request handlers get a session per request through ``get_db``. Streaming
handlers, whose database work continues after the handler returns, take
the factory instead and close their own session.
"""

from collections.abc import Generator

from sqlalchemy.orm import Session, sessionmaker

from gateway.db.engine import get_engine

_session_factory: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    """Return the session factory bound to the current engine."""
    global _session_factory

    engine = get_engine()
    # rebuilt after dispose_engine() replaced the engine
    if _session_factory is None or _session_factory.kw.get("bind") is not engine:
        _session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session that is closed after the request."""
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def get_db_factory() -> sessionmaker[Session]:
    """FastAPI dependency providing the factory; callers close what they open."""
    return get_session_factory()
