"""Persistence layer for posts, keyword rules and activity records.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes (synchronous, one session each)
    - PostRepository, RuleRepository, ActivityRepository

    # Async adapters for the webhook pipeline
    - SqlRuleStore, SqlActivitySink, SqlPostDirectory

    # Seeding
    - seed_from_file(path) -> (posts, rules)

    # Exceptions
    - PersistenceError and its subclasses

Example usage:
    >>> from autoreply.persistence import init_database, get_session, RuleRepository
    >>> init_database("sqlite:///./data/autoreply.db")
    >>> with get_session() as session:
    ...     rules = RuleRepository(session).get_active_for_resource("post-1")
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    InvalidResourceIdError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import ActivityRepository, PostRepository, RuleRepository
from .seed import seed_from_dict, seed_from_file
from .stores import SqlActivitySink, SqlPostDirectory, SqlRuleStore, validate_resource_id

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "PostRepository",
    "RuleRepository",
    "ActivityRepository",
    # Async adapters
    "SqlRuleStore",
    "SqlActivitySink",
    "SqlPostDirectory",
    "validate_resource_id",
    # Seeding
    "seed_from_file",
    "seed_from_dict",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
    "InvalidResourceIdError",
]
