"""Uniform statement verbs on top of the connection pool.

Every verb binds parameters through the codec, runs on either a freshly
acquired pooled connection (autocommit) or the pinned connection of a
transaction, and shapes the driver response into a verb-specific result.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Literal, Optional, Tuple

import aiosqlite

from softdal.utils.logging import StatementIdFilter, fmt_ctx, statement_context

from .codec import bind, decode_row, decode_rows, has_returning_clause
from .connection import ConnectionPool
from .exceptions import ConstraintViolation, StatementError
from .models import DeleteResult, InsertResult, Row, Statement, UpdateResult
from .transaction import Transaction

logger = logging.getLogger(__name__)
logger.addFilter(StatementIdFilter())

Fetch = Literal["none", "one", "all"]


def _constraint_kind(message: str) -> Optional[str]:
    error_str = message.lower()
    if "unique" in error_str:
        return "UNIQUE"
    if "foreign key" in error_str:
        return "FOREIGN KEY"
    if "not null" in error_str:
        return "NOT NULL"
    if "check constraint" in error_str:
        return "CHECK"
    return None


def _generated_key(row: Row) -> Any:
    if len(row) == 1:
        return next(iter(row.values()))
    return row.get("id")


class StatementExecutor:
    """Runs statements and normalizes driver results."""

    def __init__(self, pool: ConnectionPool):
        self._pool = pool

    @asynccontextmanager
    async def _route(self, transaction: Optional[Transaction]) -> AsyncIterator[aiosqlite.Connection]:
        if transaction is None:
            async with self._pool.acquire() as conn:
                yield conn
        else:
            async with transaction.pinned() as conn:
                yield conn

    async def _run(self, verb: str, statement: Statement, fetch: Fetch) -> Tuple[List[Any], int]:
        sql, params = bind(statement.text, statement.values)
        transaction = statement.transaction
        with statement_context() as statement_id:
            ctx = {
                "statement_id": statement_id,
                "verb": verb,
                "transaction": transaction.id if transaction is not None else None,
                "params": len(params),
            }
            start_time = time.monotonic()
            async with self._route(transaction) as conn:
                try:
                    async with conn.execute(sql, params) as cursor:
                        if fetch == "all":
                            rows = list(await cursor.fetchall())
                        elif fetch == "one":
                            row = await cursor.fetchone()
                            rows = [row] if row is not None else []
                        else:
                            rows = []
                        rowcount = cursor.rowcount
                except aiosqlite.IntegrityError as e:
                    logger.error(f"Constraint violation {fmt_ctx(ctx)} error={e}", extra=ctx)
                    raise ConstraintViolation(
                        str(e), sql=statement.text, constraint=_constraint_kind(str(e))
                    ) from e
                except (aiosqlite.Error, OverflowError, ValueError) as e:
                    logger.error(f"Statement failed {fmt_ctx(ctx)} error={e}", extra=ctx)
                    raise StatementError(str(e), sql=statement.text) from e

            ctx["execution_time_ms"] = int((time.monotonic() - start_time) * 1000)
            logger.debug(f"Statement executed {fmt_ctx(ctx)}", extra=ctx)
        return rows, max(rowcount, 0)

    async def _count(self, verb: str, statement: Statement) -> int:
        if has_returning_clause(statement.text):
            rows, _ = await self._run(verb, statement, "all")
            return len(rows)
        _, rowcount = await self._run(verb, statement, "none")
        return rowcount

    async def exec(self, statement: Statement) -> None:
        """Run a statement whose result, if any, is not needed (DDL, bulk DML)."""
        await self._run("exec", statement, "none")

    async def insert(self, statement: Statement) -> InsertResult:
        """
        Run an insert.

        ``id`` is reported only when the command has a ``RETURNING`` clause and
        exactly one row came back; it is the single returned column, or the
        ``id`` column when several were returned.
        """
        if not has_returning_clause(statement.text):
            _, rowcount = await self._run("insert", statement, "none")
            return InsertResult(rows_inserted=rowcount)

        raw_rows, _ = await self._run("insert", statement, "all")
        rows = decode_rows(raw_rows)
        key = _generated_key(rows[0]) if len(rows) == 1 else None
        return InsertResult(rows_inserted=len(rows), id=key)

    async def query_row(self, statement: Statement) -> Optional[Row]:
        """First matching row, or ``None`` when nothing matches."""
        rows, _ = await self._run("query_row", statement, "one")
        return decode_row(rows[0]) if rows else None

    async def query_rows(self, statement: Statement) -> List[Row]:
        rows, _ = await self._run("query_rows", statement, "all")
        return decode_rows(rows)

    async def update(self, statement: Statement) -> UpdateResult:
        return UpdateResult(rows_updated=await self._count("update", statement))

    async def delete(self, statement: Statement) -> DeleteResult:
        """Physical delete; soft deletes are rewritten by the session before reaching here."""
        return DeleteResult(rows_deleted=await self._count("delete", statement))
