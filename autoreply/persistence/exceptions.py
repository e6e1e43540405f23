"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can catch
every store failure with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Session requested before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required record is not found.

    Optional lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a constraint violation occurs.

    Examples:
    - Duplicate (resource_id, keyword) pair on one post
    - Duplicate external post id
    """

    pass


class InvalidResourceIdError(PersistenceError):
    """Raised when a resource id is malformed or cannot identify a post.

    The rule cache treats this as "no rules" instead of a failure.
    """

    def __init__(self, resource_id):
        self.resource_id = resource_id
        super().__init__(f"Invalid resource id: {resource_id!r}")
