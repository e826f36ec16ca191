"""Session: the single entry point for statement execution.

A session owns a connection pool, a soft delete default and at most one open
transaction. Typical use::

    db = Session("app.db")
    await db.connect()

    brand = await db.insert("INSERT INTO brands(brand_name) VALUES ($1) RETURNING id", ["Ford"])

    tx = await db.start_transaction()
    try:
        await db.insert("INSERT INTO models(brand_id, model_name) VALUES ($1, $2)", [brand.id, "Ka"], transaction=tx)
        await db.commit(tx)
    except Exception:
        await db.rollback(tx)
        raise

    await db.delete("DELETE FROM brands WHERE id = $1", [brand.id], options={"soft_delete": True})
    await db.close()
"""

from __future__ import annotations

import datetime
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Callable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from softdal.config import DatabaseSettings, get_settings

from .codec import bind
from .connection import ConnectionPool
from .exceptions import SessionClosed, SessionError, StatementError, TransactionError
from .executor import StatementExecutor
from .models import DeleteOptions, DeleteResult, InsertResult, Row, Statement, UpdateResult
from .soft_delete import SoftDeleteRewriter
from .transaction import Transaction

logger = logging.getLogger(__name__)

Values = Optional[Sequence[Any]]
Options = Union[DeleteOptions, Mapping[str, Any], None]


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CLOSED = "closed"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Session:
    """Database session with the uniform verb API and soft delete support."""

    def __init__(
        self,
        path: str,
        *,
        pool_size: int = 5,
        pool_timeout: float = 30.0,
        busy_timeout: int = 5000,
        soft_delete: bool = False,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        self.state = SessionState.DISCONNECTED
        self._pool = ConnectionPool(path, size=pool_size, timeout=pool_timeout, busy_timeout=busy_timeout)
        self._executor = StatementExecutor(self._pool)
        self._soft_delete = soft_delete
        self._clock = clock or _utcnow
        self._transaction: Optional[Transaction] = None

    @classmethod
    def from_settings(cls, settings: Optional[DatabaseSettings] = None, **kwargs: Any) -> "Session":
        """Build a session from ``DATABASE_*`` settings (environment or ``.env``)."""
        if settings is None:
            settings = get_settings().db
        return cls(
            settings.path,
            pool_size=settings.pool_size,
            pool_timeout=settings.pool_timeout,
            busy_timeout=settings.busy_timeout,
            soft_delete=settings.soft_delete,
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"<Session path={self.path!r} state={self.state.value}>"

    @property
    def path(self) -> str:
        return self._pool.path

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def transaction(self) -> Optional[Transaction]:
        """The currently open transaction, if any."""
        if self._transaction is not None and self._transaction.is_open:
            return self._transaction
        return None

    @property
    def soft_delete(self) -> bool:
        return self._soft_delete

    @soft_delete.setter
    def soft_delete(self, flag: bool) -> None:
        self.set_soft_delete(flag)

    def set_soft_delete(self, flag: bool) -> None:
        """Set the session-wide soft delete default for subsequent deletes."""
        self._soft_delete = bool(flag)
        logger.debug("Session soft delete default set to %s", self._soft_delete)

    # -- lifecycle ---------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the connection pool.

        Raises:
            ConnectionError: The database could not be opened
            SessionError: The session is already connected
            SessionClosed: The session was closed
        """
        if self.state is SessionState.CLOSED:
            raise SessionClosed("Session is closed")
        if self.state is SessionState.CONNECTED:
            raise SessionError("Session is already connected")
        await self._pool.open()
        self.state = SessionState.CONNECTED
        logger.info("Session connected to %s", self.path)

    async def close(self) -> None:
        """Roll back a dangling transaction, then release every connection."""
        if self.state is SessionState.CLOSED:
            raise SessionClosed("Session is already closed")
        current = self.transaction
        if current is not None:
            logger.warning("Closing session with open transaction %s; rolling back", current.id)
            try:
                await current.rollback()
            except TransactionError:
                logger.exception("Rollback of transaction %s failed during close", current.id)
        self._transaction = None
        await self._pool.close()
        self.state = SessionState.CLOSED
        logger.info("Session closed")

    async def __aenter__(self) -> "Session":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.state is not SessionState.CLOSED:
            await self.close()

    def _ensure_connected(self) -> None:
        if self.state is SessionState.CLOSED:
            raise SessionClosed("Session is closed")
        if self.state is not SessionState.CONNECTED:
            raise SessionError("Session is not connected; call connect() first")

    def _check_transaction(self, transaction: Optional[Transaction]) -> None:
        if transaction is None:
            return
        if not isinstance(transaction, Transaction):
            raise TransactionError(f"Expected a Transaction, got {type(transaction).__name__}")
        if transaction.session is not self:
            raise TransactionError(f"Transaction {transaction.id} belongs to another session")

    def _statement(self, text: str, values: Values, transaction: Optional[Transaction]) -> Statement:
        self._ensure_connected()
        self._check_transaction(transaction)
        if isinstance(values, (str, bytes)):
            raise StatementError("Statement values must be a sequence, not a string", sql=text)
        try:
            return Statement(text=text, values=list(values or ()), transaction=transaction)
        except ValidationError as e:
            raise StatementError(f"Invalid statement: {e.errors()[0]['msg']}", sql=text) from e

    # -- verbs -------------------------------------------------------------

    async def exec(self, command: str, values: Values = None, transaction: Optional[Transaction] = None) -> None:
        """Execute a statement without a result (CREATE, DROP, bulk DML...)."""
        await self._executor.exec(self._statement(command, values, transaction))

    async def insert(
        self, command: str, values: Values = None, transaction: Optional[Transaction] = None
    ) -> InsertResult:
        return await self._executor.insert(self._statement(command, values, transaction))

    async def query_row(
        self, sql: str, values: Values = None, transaction: Optional[Transaction] = None
    ) -> Optional[Row]:
        """Return the first matching row, or ``None`` when there is none."""
        return await self._executor.query_row(self._statement(sql, values, transaction))

    async def query_rows(
        self, sql: str, values: Values = None, transaction: Optional[Transaction] = None
    ) -> List[Row]:
        return await self._executor.query_rows(self._statement(sql, values, transaction))

    async def update(
        self, command: str, values: Values = None, transaction: Optional[Transaction] = None
    ) -> UpdateResult:
        return await self._executor.update(self._statement(command, values, transaction))

    async def delete(
        self,
        command: str,
        values: Values = None,
        transaction: Optional[Transaction] = None,
        options: Options = None,
    ) -> DeleteResult:
        """
        Delete rows, physically or by setting ``deleted_at``.

        Soft delete applies when ``options.soft_delete`` is true, or when it is
        unset and the session default is on. Auditing values (``user_id``,
        ``user_name``) are written to ``deleted_by_id``/``deleted_by_name``
        only for soft deletes. The result shape is the same either way.

        Raises:
            StatementError: Placeholders and values do not match, in either mode
            UnsupportedDeleteShape: Soft delete requested for a command that is
                not ``DELETE FROM <table> WHERE <predicate>``
        """
        statement = self._statement(command, values, transaction)
        opts = self._delete_options(options)

        if not SoftDeleteRewriter.resolve(opts, self._soft_delete):
            return await self._executor.delete(statement)

        # appended timestamp/audit values must not fill a placeholder the caller left unbound
        bind(command, statement.values)
        rewritten = SoftDeleteRewriter.rewrite(command, statement.values, opts, self._clock())
        logger.debug("Soft delete rewritten to: %s", rewritten.sql)
        result = await self._executor.update(
            Statement(text=rewritten.sql, values=rewritten.values, transaction=transaction)
        )
        return DeleteResult(rows_deleted=result.rows_updated)

    @staticmethod
    def _delete_options(options: Options) -> Optional[DeleteOptions]:
        if options is None or isinstance(options, DeleteOptions):
            return options
        try:
            return DeleteOptions.model_validate(dict(options))
        except (ValidationError, TypeError, ValueError) as e:
            raise StatementError(f"Invalid delete options: {e}") from e

    # -- transactions ------------------------------------------------------

    async def start_transaction(self) -> Transaction:
        """
        Open a transaction on a dedicated connection.

        Raises:
            ConnectionError: No connection is available
            TransactionError: This session already has an open transaction
        """
        self._ensure_connected()
        if self.transaction is not None:
            raise TransactionError(f"Transaction {self._transaction.id} is still open")
        tx = await Transaction.begin(self._pool, self)
        self._transaction = tx
        return tx

    async def commit(self, transaction: Transaction) -> None:
        self._ensure_connected()
        self._check_transaction(transaction)
        await transaction.commit()
        self._forget(transaction)

    async def rollback(self, transaction: Transaction) -> None:
        self._ensure_connected()
        self._check_transaction(transaction)
        try:
            await transaction.rollback()
        finally:
            self._forget(transaction)

    def _forget(self, transaction: Transaction) -> None:
        if self._transaction is transaction and not transaction.is_open:
            self._transaction = None

    @asynccontextmanager
    async def transaction_scope(self) -> AsyncIterator[Transaction]:
        """
        Scoped transaction: commits when the block succeeds, rolls back when
        it raises (the exception is re-raised) or when the commit is rejected.

        Usage:
            async with db.transaction_scope() as tx:
                await db.insert("INSERT ...", [...], transaction=tx)
        """
        tx = await self.start_transaction()
        try:
            yield tx
        except BaseException:
            if tx.is_open:
                try:
                    await self.rollback(tx)
                except TransactionError:
                    logger.exception("Rollback of transaction %s failed", tx.id)
            raise
        if tx.is_open:
            try:
                await self.commit(tx)
            except TransactionError:
                await self.rollback(tx)
                raise
