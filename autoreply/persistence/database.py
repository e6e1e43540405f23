"""Database engine and session lifecycle for the rule/activity store.

The engine is module-level state owned by the process entry point: call
init_database() once at startup and close_database() at shutdown. Store
adapters open short sessions with get_session() from worker threads, so
SQLite connections are created without the same-thread check.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from autoreply.logging import get_logger

from .exceptions import DatabaseConnectionError

_engine: Engine | None = None
_session_factory: sessionmaker | None = None

logger = get_logger(__name__, component="database")


def init_database(database_url: str) -> None:
    """Create the engine, verify it and create missing tables.

    Args:
        database_url: SQLAlchemy URL (e.g., "sqlite:///./data/autoreply.db")

    Raises:
        DatabaseConnectionError: If the URL is unusable or the connection fails

    Example:
        >>> init_database("sqlite:///./data/autoreply.db")
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": _redact_url(database_url)},
    )

    try:
        _ensure_sqlite_directory(database_url)

        engine = create_engine(database_url, **_engine_options(database_url))
        if database_url.startswith("sqlite"):
            _configure_sqlite(engine)

        _validate_connection(engine)

        from .schema import create_schema

        create_schema(engine)
    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True)
        raise DatabaseConnectionError(error_msg) from e

    _engine = engine
    _session_factory = sessionmaker(
        bind=engine,
        autoflush=True,
        expire_on_commit=False,
    )

    logger.info(
        "Database initialized",
        extra={"event": "database.initialised", "database_url": _redact_url(database_url)},
    )


def _engine_options(database_url: str) -> Dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}

    options: Dict[str, Any] = {
        "connect_args": {"check_same_thread": False, "timeout": 30},
    }
    if _is_memory_url(database_url):
        # One shared connection, otherwise every thread sees its own empty database
        options["poolclass"] = StaticPool
    return options


def _is_memory_url(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or database_url.endswith(":memory:")


def _ensure_sqlite_directory(database_url: str) -> None:
    if not database_url.startswith("sqlite:///") or _is_memory_url(database_url):
        return

    db_file = Path(database_url[len("sqlite:///"):])
    if not db_file.parent.exists():
        logger.info(f"Creating database directory: {db_file.parent}")
        db_file.parent.mkdir(parents=True, exist_ok=True)


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e
    logger.debug("Database connection validated")


def _redact_url(url: str) -> str:
    """Hide the password part of a database URL before logging it."""
    if url.startswith("sqlite") or "@" not in url:
        return url

    credentials, _, location = url.rpartition("@")
    scheme, _, user_info = credentials.partition("://")
    username = user_info.split(":", 1)[0]
    return f"{scheme}://{username}:***@{location}"


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error.

    Raises:
        DatabaseConnectionError: If init_database() has not been called

    Example:
        >>> with get_session() as session:
        ...     rules = RuleRepository(session).get_active_for_resource("post-1")
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Database session rolled back: {e}",
            extra={
                "event": "database.session.rolled_back",
                "error_type": type(e).__name__,
            },
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the initialized engine.

    Raises:
        DatabaseConnectionError: If init_database() has not been called
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the engine. Safe to call when nothing was initialized."""
    global _engine, _session_factory

    if _engine is None:
        return

    _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database connections closed", extra={"event": "database.closed"})
