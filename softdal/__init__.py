"""
Async relational database access layer with soft delete support.

Public API:

    from softdal import Session

    db = Session("example.db")
    await db.connect()
    result = await db.insert("INSERT INTO brands(brand_name) VALUES ($1) RETURNING id", ["Ford"])
    row = await db.query_row("SELECT * FROM brands WHERE id = $1", [result.id])
    await db.close()
"""

from .db.session import Session, SessionState
from .db.transaction import Transaction, TransactionState
from .db.connection import ConnectionPool
from .db.soft_delete import SoftDeleteRewriter

from .db.models import (
    DeleteOptions,
    DeleteResult,
    InsertResult,
    Row,
    Statement,
    UpdateResult,
)

from .db.exceptions import (
    DatabaseError,
    ConnectionError,
    SessionError,
    SessionClosed,
    TransactionError,
    TransactionClosed,
    StatementError,
    ConstraintViolation,
    UnsupportedDeleteShape,
)

__all__ = [
    # Main entry points
    "Session",
    "SessionState",
    "Transaction",
    "TransactionState",

    # Extension points
    "ConnectionPool",
    "SoftDeleteRewriter",

    # Statement and result shapes
    "Statement",
    "Row",
    "DeleteOptions",
    "InsertResult",
    "UpdateResult",
    "DeleteResult",

    # Exceptions
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
