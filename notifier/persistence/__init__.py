"""Persistence layer for the relational store.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes (each wraps a caller-owned session)
    - UserRepository, JobRepository, AlertRepository
    - NotificationLogRepository, SearchHistoryRepository, QueueRepository

    # Exceptions
    - PersistenceError and its subclasses

Example usage:
    >>> from notifier.persistence import init_database, get_session, JobRepository
    >>> init_database("sqlite:///./data/job_board.db")
    >>> with get_session() as session:
    ...     job = JobRepository(session).get_by_id(42)
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    QueueStateError,
    RecordNotFoundError,
)
from .repositories import (
    AlertRepository,
    JobRepository,
    NotificationLogRepository,
    QueueRepository,
    SearchHistoryRepository,
    UserRepository,
)

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "UserRepository",
    "JobRepository",
    "AlertRepository",
    "NotificationLogRepository",
    "SearchHistoryRepository",
    "QueueRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
    "QueueStateError",
]
