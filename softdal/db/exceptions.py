"""Exception hierarchy of the database access layer.

Every failure raised by ``softdal`` derives from :class:`DatabaseError` so
callers can catch the whole family, or a specific member when they need to
react differently (e.g. roll back on :class:`StatementError`).
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "DatabaseError",
    "ConnectionError",
    "SessionError",
    "SessionClosed",
    "TransactionError",
    "TransactionClosed",
    "StatementError",
    "ConstraintViolation",
    "UnsupportedDeleteShape",
]


class DatabaseError(Exception):
    """Base exception for all access layer errors."""


class ConnectionError(DatabaseError):
    """Failed to open a connection or to acquire one from the pool."""


class SessionError(DatabaseError):
    """Session used in a state that does not allow the operation."""


class SessionClosed(SessionError):
    """Operation attempted on a session that has been closed."""


class TransactionError(DatabaseError):
    """Invalid transaction transition, or commit/rollback rejected by the driver."""


class TransactionClosed(TransactionError):
    """Operation attempted on a transaction that was committed or rolled back."""


class StatementError(DatabaseError):
    """
    Statement failed validation or was rejected by the driver.

    Attributes:
        sql: Statement text as supplied by the caller
        diagnostic: Driver (or validation) message, kept verbatim
    """

    def __init__(self, message: str, *, sql: Optional[str] = None, diagnostic: Optional[str] = None):
        super().__init__(message)
        self.sql = sql
        self.diagnostic = diagnostic if diagnostic is not None else message


class ConstraintViolation(StatementError):
    """
    Integrity constraint violated (foreign key, unique, not null, check).

    Attributes:
        constraint: Kind of constraint that was violated (if recognised)
    """

    def __init__(
        self,
        message: str,
        *,
        sql: Optional[str] = None,
        diagnostic: Optional[str] = None,
        constraint: Optional[str] = None,
    ):
        super().__init__(message, sql=sql, diagnostic=diagnostic)
        self.constraint = constraint


class UnsupportedDeleteShape(DatabaseError):
    """Soft delete requested for a command outside ``DELETE FROM <table> WHERE <predicate>``."""

    def __init__(self, command: str):
        super().__init__(f"Cannot rewrite delete command for soft delete: {command.strip()!r}")
        self.command = command
