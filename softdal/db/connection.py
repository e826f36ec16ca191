"""Async SQLite connection pool.

Wraps `aiosqlite` connections in a fixed-size pool owned by a session. A
connection is checked out by exactly one owner at a time (a transaction or a
single standalone statement) and must be checked back in exactly once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set

import aiosqlite

from .exceptions import ConnectionError

MEMORY_PATH = ":memory:"

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Fixed-size pool of autocommit `aiosqlite` connections.

    Connections are opened with ``isolation_level=None`` so that transactions
    are driven explicitly with ``BEGIN``/``COMMIT``/``ROLLBACK``.

    ``":memory:"`` opens a new isolated database per connection, so for
    in-memory databases the pool holds **one** connection that every owner
    takes turns on.
    """

    def __init__(self, path: str, size: int = 5, timeout: float = 30.0, busy_timeout: int = 5000):
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self.path = path
        self.size = 1 if path == MEMORY_PATH else size
        self.timeout = timeout
        self.busy_timeout = busy_timeout
        # ``None`` entries are free slots whose connection must be (re)opened
        self._queue: Optional[asyncio.Queue[Optional[aiosqlite.Connection]]] = None
        self._checked_out: Set[aiosqlite.Connection] = set()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._queue is not None and not self._closed

    @property
    def idle(self) -> int:
        """Number of slots currently available for checkout."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def in_use(self) -> int:
        return len(self._checked_out)

    async def _connect(self) -> aiosqlite.Connection:
        try:
            conn = await aiosqlite.connect(
                self.path,
                timeout=self.busy_timeout / 1000,
                isolation_level=None,
                cached_statements=128,
            )
        except (aiosqlite.Error, OSError) as e:
            raise ConnectionError(f"Failed to connect to database {self.path}: {e}") from e
        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON;")
            await conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout)};")
        except aiosqlite.Error as e:
            await self._close_quietly(conn)
            raise ConnectionError(f"Failed to configure connection to {self.path}: {e}") from e
        except asyncio.CancelledError:
            await self._close_quietly(conn)
            raise
        return conn

    @staticmethod
    async def _close_quietly(conn: aiosqlite.Connection) -> None:
        try:
            await conn.close()
        except Exception as exc:  # pragma: no cover - cleanup best effort
            logger.warning("Error closing DB connection: %s", exc)

    async def open(self) -> None:
        """Open every connection of the pool; fails fast with :class:`ConnectionError`."""
        if self._closed:
            raise ConnectionError("Connection pool has been closed")
        if self._queue is not None:
            return

        q: asyncio.Queue[Optional[aiosqlite.Connection]] = asyncio.Queue(maxsize=self.size)
        opened = []
        try:
            for i in range(self.size):
                conn = await self._connect()
                opened.append(conn)
                q.put_nowait(conn)
                logger.debug("Opened connection %d/%d", i + 1, self.size)
        except ConnectionError:
            logger.exception("Error opening database connection [%d]", len(opened) + 1)
            for conn in opened:
                await self._close_quietly(conn)
            raise
        self._queue = q
        logger.info("Database connection pool initialized with size %d (%s)", self.size, self.path)

    async def checkout(self) -> aiosqlite.Connection:
        """
        Take a connection out of the pool.

        Waits up to ``timeout`` seconds for a free slot. The connection is
        validated and transparently replaced when it no longer answers.

        Raises:
            ConnectionError: Pool not open, no connection available in time,
                or a replacement connection could not be opened
        """
        if self._queue is None or self._closed:
            raise ConnectionError("Connection pool is not open")
        try:
            conn = await asyncio.wait_for(self._queue.get(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Timed out waiting for database connection")
            raise ConnectionError("Timed out waiting for a database connection") from None

        try:
            if conn is not None:
                try:
                    async with conn.execute("SELECT 1;"):
                        pass
                except (aiosqlite.Error, ValueError) as e:
                    logger.warning("Database connection is invalid, recreating new connection: %s", e)
                    stale, conn = conn, None
                    await self._close_quietly(stale)
            if conn is None:
                conn = await self._connect()
        except BaseException:
            # the slot goes back empty whatever interrupted validation or reconnect
            self._queue.put_nowait(None)
            if conn is not None:
                await self._close_quietly(conn)
            raise

        self._checked_out.add(conn)
        logger.debug("Acquired database connection from pool (in use: %d)", len(self._checked_out))
        return conn

    async def checkin(self, conn: aiosqlite.Connection, *, discard: bool = False) -> None:
        """
        Give a checked-out connection back.

        With ``discard=True`` the connection is closed and its slot reopened
        lazily on the next checkout; use it when the connection state is
        unknown (cancelled statement, failed rollback).
        """
        if conn not in self._checked_out:
            raise ConnectionError("Connection was not checked out from this pool")
        self._checked_out.discard(conn)

        if self._closed or self._queue is None:
            await self._close_quietly(conn)
            return
        if discard:
            self._queue.put_nowait(None)
            logger.warning("Discarded database connection, slot will be reopened")
            await self._close_quietly(conn)
            return
        self._queue.put_nowait(conn)
        logger.debug("Returned database connection to pool")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Acquire a connection for the duration of the block.

        Usage:
            async with pool.acquire() as conn:
                await conn.execute(...)
        """
        conn = await self.checkout()
        start_time = time.monotonic()
        discard = False
        try:
            yield conn
        except asyncio.CancelledError:
            discard = True
            raise
        finally:
            elapsed = time.monotonic() - start_time
            logger.debug("Database connection held for %.3f seconds", elapsed)
            await self.checkin(conn, discard=discard)

    async def close(self) -> None:
        """Close all idle connections; checked-out ones are closed on checkin."""
        if self._closed:
            return
        self._closed = True
        if self._queue is None:
            return

        while not self._queue.empty():
            conn = self._queue.get_nowait()
            if conn is not None:
                await self._close_quietly(conn)
        if self._checked_out:
            logger.warning("Closing pool with %d connection(s) still checked out", len(self._checked_out))
        logger.info("Database connection pool closed")
