"""Value codec between the caller-facing statement format and aiosqlite.

Callers write positional placeholders as ``$1 … $N``; SQLite understands the
numbered form ``?1 … ?N``, so the codec rewrites placeholders while leaving
string literals, quoted identifiers and comments alone. Parameter values are
encoded into types the driver binds natively and rows are decoded into plain
dictionaries.
"""

from __future__ import annotations

import datetime
import json
import re
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .exceptions import StatementError

__all__ = [
    "bind",
    "decode_row",
    "decode_rows",
    "encode_value",
    "has_returning_clause",
    "placeholder_indices",
    "strip_literals",
]

_TOKEN_RE = re.compile(
    r"""
      (?P<literal>'(?:[^']|'')*')
    | (?P<ident>"(?:[^"]|"")*")
    | (?P<line_comment>--[^\n]*)
    | (?P<block_comment>/\*.*?\*/)
    | (?<![\w$])\$(?P<index>\d+)
    """,
    re.VERBOSE | re.DOTALL,
)
_RETURNING_RE = re.compile(r"\bRETURNING\b", re.IGNORECASE)

# SQLite INTEGER storage class
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def placeholder_indices(sql: str) -> Set[int]:
    """Return the set of ``$N`` indices referenced outside literals and comments."""
    return {int(m.group("index")) for m in _TOKEN_RE.finditer(sql) if m.group("index") is not None}


def strip_literals(sql: str, *, identifiers: bool = True) -> str:
    """
    Blank out string literals and comments, keeping offsets intact.

    Quoted identifiers are blanked too unless *identifiers* is false.
    """

    def _blank(match: re.Match) -> str:
        if match.group("index") is not None:
            return match.group(0)
        if not identifiers and match.group("ident") is not None:
            return match.group(0)
        return " " * len(match.group(0))

    return _TOKEN_RE.sub(_blank, sql)


def has_returning_clause(sql: str) -> bool:
    return _RETURNING_RE.search(strip_literals(sql)) is not None


def _to_driver_sql(sql: str) -> str:
    def _replace(match: re.Match) -> str:
        if match.group("index") is not None:
            return f"?{match.group('index')}"
        return match.group(0)

    return _TOKEN_RE.sub(_replace, sql)


def encode_value(value: Any) -> Any:
    """Convert a Python value into something sqlite3 binds without adapters."""
    if value is None:
        return None
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise StatementError(f"Integer parameter out of 64-bit range: {value}")
        return value
    if isinstance(value, (float, str, bytes)):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, Enum):
        return encode_value(value.value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    raise StatementError(f"Unsupported parameter type: {type(value).__name__}")


def bind(sql: str, values: Optional[Sequence[Any]] = None) -> Tuple[str, Tuple[Any, ...]]:
    """
    Validate placeholders against *values* and translate both for the driver.

    Index N in *values* (1-based) binds to ``$N`` in *sql*. Every index from 1
    to ``len(values)`` must appear at least once and no other index may be
    used; a mismatch raises :class:`StatementError` before the driver is
    reached.

    Returns:
        Tuple of driver SQL text and encoded parameter tuple
    """
    if values is None:
        values = ()
    if isinstance(values, (str, bytes)):
        raise StatementError("Statement values must be a sequence, not a string", sql=sql)

    indices = placeholder_indices(sql)
    expected = set(range(1, len(values) + 1))
    if indices != expected:
        unknown = sorted(indices - expected)
        unused = sorted(expected - indices)
        details = []
        if unknown:
            details.append("no value for " + ", ".join(f"${i}" for i in unknown))
        if unused:
            details.append("no placeholder for " + ", ".join(f"${i}" for i in unused))
        raise StatementError(
            f"Placeholder mismatch: {len(indices)} placeholder(s), {len(values)} value(s) ({'; '.join(details)})",
            sql=sql,
        )

    try:
        params = tuple(encode_value(v) for v in values)
    except StatementError as e:
        raise StatementError(str(e), sql=sql) from e
    return _to_driver_sql(sql), params


def decode_row(row: Any) -> Optional[Dict[str, Any]]:
    """Turn a driver row into a ``field -> value`` mapping (``None`` stays ``None``)."""
    if row is None:
        return None
    return dict(zip(row.keys(), tuple(row)))


def decode_rows(rows: Sequence[Any]) -> List[Dict[str, Any]]:
    return [decode_row(row) for row in rows]  # type: ignore[misc]
