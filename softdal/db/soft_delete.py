"""Soft delete rewriting.

Turns ``DELETE FROM <table> WHERE <predicate>`` into
``UPDATE <table> SET deleted_at = … WHERE <predicate>`` so the row stays in
place, marked as deleted. Any other command shape raises
:class:`UnsupportedDeleteShape`.
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from .codec import strip_literals
from .exceptions import UnsupportedDeleteShape
from .models import DeleteOptions

__all__ = ["DeleteTarget", "RewrittenDelete", "SoftDeleteRewriter"]

_IDENT = r'(?:"(?:[^"]|"")+"|[A-Za-z_][\w$]*)'

# words that may follow the table name but are never an alias
_RESERVED_AFTER_TABLE = (
    "WHERE", "USING", "INDEXED", "NOT", "RETURNING", "SET", "ORDER", "LIMIT",
    "FROM", "JOIN", "LEFT", "INNER", "CROSS", "NATURAL", "ON", "AS", "WITH",
)
_RESERVED = "|".join(_RESERVED_AFTER_TABLE)
_DELETE_RE = re.compile(
    rf"""
    ^\s*DELETE\s+FROM\s+
    (?P<table>{_IDENT}(?:\s*\.\s*{_IDENT})?)
    (?:\s+(?:AS\s+)?(?P<alias>(?!(?:{_RESERVED})\b)[A-Za-z_][\w$]*))?
    \s+WHERE\s+
    (?P<predicate>.+?)
    \s*;?\s*$
    """,
    re.IGNORECASE | re.VERBOSE | re.DOTALL,
)
_FORBIDDEN_IN_PREDICATE = re.compile(r";|\bRETURNING\b", re.IGNORECASE)


@dataclass(frozen=True)
class DeleteTarget:
    """Pieces of a parsed delete command, sliced from the original text."""

    table: str
    alias: Optional[str]
    predicate: str


@dataclass(frozen=True)
class RewrittenDelete:
    sql: str
    values: List[Any]


class SoftDeleteRewriter:
    """Resolves the soft delete policy and rewrites delete commands."""

    @staticmethod
    def resolve(options: Optional[DeleteOptions], session_default: bool) -> bool:
        """Per-call option wins, then the session default."""
        if options is not None and options.soft_delete is not None:
            return options.soft_delete
        return bool(session_default)

    @staticmethod
    def parse(command: str) -> DeleteTarget:
        """
        Split *command* into table, alias and predicate.

        Matching runs on a copy with literals and comments blanked out so a
        quoted ``';'`` or ``'WHERE'`` cannot change the shape; the returned
        pieces are sliced from the original text at the same offsets.
        """
        masked = strip_literals(command, identifiers=False)
        match = _DELETE_RE.match(masked)
        if match is None:
            raise UnsupportedDeleteShape(command)
        if _FORBIDDEN_IN_PREDICATE.search(match.group("predicate")):
            raise UnsupportedDeleteShape(command)

        table = command[match.start("table") : match.end("table")]
        alias = match.group("alias")
        predicate = command[match.start("predicate") : match.end("predicate")]
        return DeleteTarget(table=table, alias=alias, predicate=predicate)

    @classmethod
    def rewrite(
        cls,
        command: str,
        values: Optional[Sequence[Any]],
        options: Optional[DeleteOptions],
        now: datetime.datetime,
    ) -> RewrittenDelete:
        """
        Build the soft delete update for *command*.

        Original values keep their positions; the timestamp and the optional
        auditing values are appended after them.
        """
        target = cls.parse(command)
        new_values = list(values or ())

        new_values.append(now)
        assignments = [f"deleted_at = ${len(new_values)}"]
        if options is not None and options.user_id is not None:
            new_values.append(options.user_id)
            assignments.append(f"deleted_by_id = ${len(new_values)}")
        if options is not None and options.user_name is not None:
            new_values.append(options.user_name)
            assignments.append(f"deleted_by_name = ${len(new_values)}")

        alias = f" AS {target.alias}" if target.alias else ""
        sql = f"UPDATE {target.table}{alias} SET {', '.join(assignments)} WHERE {target.predicate}"
        return RewrittenDelete(sql=sql, values=new_values)
