"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can catch
storage failures with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database used before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a record that must exist is missing.

    Optional lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated (unique, foreign key, check)."""

    pass


class QueueStateError(PersistenceError):
    """Raised on an illegal queue item status transition.

    Examples:
    - Finalizing an item that is not in processing
    - Requeueing an item that has not reached a terminal status
    """

    pass
