"""Explicit transactions pinned to one pooled connection."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator

import aiosqlite

from .connection import ConnectionPool
from .exceptions import TransactionClosed, TransactionError

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


async def _run(conn: aiosqlite.Connection, sql: str) -> None:
    async with conn.execute(sql):
        pass


class Transaction:
    """
    A unit of work that exclusively owns one checked-out connection.

    Every statement issued with this transaction runs on that connection,
    one at a time and in issue order. The connection goes back to the pool
    exactly once, on commit or rollback. A failed statement leaves the
    transaction open; the caller decides to roll back.
    """

    def __init__(self, pool: ConnectionPool, connection: aiosqlite.Connection, session: "Session | None" = None):
        self.id = uuid.uuid4().hex[:8]
        self.session = session
        self.state = TransactionState.OPEN
        self._pool = pool
        self._connection = connection
        self._lock = asyncio.Lock()
        # set when a statement was cancelled mid-flight; connection state unknown
        self._broken = False

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} state={self.state.value}>"

    @classmethod
    async def begin(cls, pool: ConnectionPool, session: "Session | None" = None) -> "Transaction":
        """
        Check out a dedicated connection and open a transaction on it.

        Raises:
            ConnectionError: No connection could be acquired
            TransactionError: The driver refused ``BEGIN``
        """
        conn = await pool.checkout()
        try:
            await _run(conn, "BEGIN IMMEDIATE")
        except aiosqlite.Error as e:
            await pool.checkin(conn)
            raise TransactionError(f"Failed to begin transaction: {e}") from e
        except asyncio.CancelledError:
            await pool.checkin(conn, discard=True)
            raise
        tx = cls(pool, conn, session)
        logger.debug("Transaction %s started", tx.id)
        return tx

    @property
    def is_open(self) -> bool:
        return self.state is TransactionState.OPEN

    @property
    def is_broken(self) -> bool:
        return self._broken

    @property
    def connection(self) -> aiosqlite.Connection:
        """The pinned connection; only available while the transaction is open."""
        self.ensure_open()
        return self._connection

    def ensure_open(self) -> None:
        if self.state is not TransactionState.OPEN:
            raise TransactionClosed(f"Transaction {self.id} is already {self.state.value}")

    def _ensure_usable(self) -> None:
        self.ensure_open()
        if self._broken:
            raise TransactionError(
                f"Transaction {self.id} connection is unusable after a cancelled statement; roll it back"
            )

    @asynccontextmanager
    async def pinned(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the pinned connection for one statement."""
        self._ensure_usable()
        async with self._lock:
            # state may have changed while waiting for the previous statement
            self._ensure_usable()
            try:
                yield self._connection
            except asyncio.CancelledError:
                self._broken = True
                logger.warning("Statement cancelled inside transaction %s; connection marked unusable", self.id)
                raise

    async def commit(self) -> None:
        """
        Commit the unit of work and release the connection.

        A rejected commit raises :class:`TransactionError` and leaves the
        transaction open so the caller can roll back.
        """
        self._ensure_usable()
        async with self._lock:
            self._ensure_usable()
            try:
                await _run(self._connection, "COMMIT")
            except aiosqlite.Error as e:
                logger.error("Commit of transaction %s rejected: %s", self.id, e)
                raise TransactionError(f"Commit rejected: {e}") from e
            except asyncio.CancelledError:
                self._broken = True
                raise
            self.state = TransactionState.COMMITTED
            await self._pool.checkin(self._connection)
        logger.debug("Transaction %s committed", self.id)

    async def rollback(self) -> None:
        """
        Discard every statement issued since :meth:`begin` and release the connection.

        Always terminal. A connection whose rollback fails, or that was
        marked unusable, is discarded instead of returned to the pool.
        """
        self.ensure_open()
        async with self._lock:
            self.ensure_open()
            self.state = TransactionState.ROLLED_BACK
            discard = self._broken
            error: Any = None
            try:
                # sqlite may already have rolled back on some errors
                if not self._broken and self._connection.in_transaction:
                    await _run(self._connection, "ROLLBACK")
            except aiosqlite.Error as e:
                discard = True
                error = e
            except asyncio.CancelledError:
                discard = True
                raise
            finally:
                await self._pool.checkin(self._connection, discard=discard)

        if error is not None:
            logger.error("Rollback of transaction %s failed: %s", self.id, error)
            raise TransactionError(f"Rollback failed: {error}") from error
        logger.debug("Transaction %s rolled back", self.id)
