"""Tests for placeholder binding, value encoding and row decoding."""

import datetime
import sqlite3
import uuid
from decimal import Decimal
from enum import Enum

import pytest

from softdal import StatementError
from softdal.db.codec import (
    bind,
    decode_row,
    decode_rows,
    encode_value,
    has_returning_clause,
    placeholder_indices,
    strip_literals,
)


class Color(Enum):
    RED = "red"


# region Binding
@pytest.mark.parametrize(
    "sql, values, expected_sql, expected_params",
    [
        (
            "SELECT * FROM t WHERE a = $1 AND b = $2",
            [1, "x"],
            "SELECT * FROM t WHERE a = ?1 AND b = ?2",
            (1, "x"),
        ),
        (
            "SELECT * FROM t WHERE a = $1 OR b = $1",
            [3],
            "SELECT * FROM t WHERE a = ?1 OR b = ?1",
            (3,),
        ),
        (
            "SELECT '$1' AS s, \"$2col\" FROM t WHERE a = $1",
            [5],
            "SELECT '$1' AS s, \"$2col\" FROM t WHERE a = ?1",
            (5,),
        ),
        (
            "SELECT 1 -- compare with $2\nFROM t WHERE x = $1 /* $3 */",
            ["v"],
            "SELECT 1 -- compare with $2\nFROM t WHERE x = ?1 /* $3 */",
            ("v",),
        ),
        (
            "SELECT 'it''s $1' FROM t WHERE x = $2 AND y = $1",
            [True, None],
            "SELECT 'it''s $1' FROM t WHERE x = ?2 AND y = ?1",
            (1, None),
        ),
        ("CREATE TABLE t (id INTEGER)", None, "CREATE TABLE t (id INTEGER)", ()),
    ],
    ids=[
        "two-placeholders",
        "reused-placeholder",
        "literal-and-identifier-untouched",
        "comments-untouched",
        "escaped-quote-and-out-of-order",
        "no-placeholders",
    ],
)
def test_bind_translates_placeholders(sql, values, expected_sql, expected_params):
    driver_sql, params = bind(sql, values)
    assert driver_sql == expected_sql
    assert params == expected_params


@pytest.mark.parametrize(
    "sql, values",
    [
        ("INSERT INTO m(brand_id, model_name) VALUES ($1)", [1, "F40"]),
        ("SELECT * FROM t WHERE a = $1 AND b = $3", [1, 2, 3]),
        ("SELECT * FROM t WHERE a = $1", []),
        ("SELECT * FROM t WHERE a = $0", [1]),
        ("SELECT * FROM t", [1]),
    ],
    ids=["too-many-values", "gap", "missing-value", "zero-index", "values-without-placeholders"],
)
def test_bind_rejects_placeholder_mismatch(sql, values):
    with pytest.raises(StatementError, match="Placeholder mismatch") as exc_info:
        bind(sql, values)
    assert exc_info.value.sql == sql


def test_bind_rejects_string_values():
    with pytest.raises(StatementError, match="sequence"):
        bind("SELECT $1", "abc")


def test_bind_rejects_unsupported_value_type():
    with pytest.raises(StatementError, match="Unsupported parameter type: object") as exc_info:
        bind("SELECT $1", [object()])
    assert exc_info.value.sql == "SELECT $1"


def test_placeholder_indices_ignores_dollar_in_identifiers():
    assert placeholder_indices("SELECT tbl$1.a FROM tbl$1 WHERE b = $2") == {2}


# endregion


# region Encoding
@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (True, 1),
        (False, 0),
        (42, 42),
        (1.5, 1.5),
        ("text", "text"),
        (b"raw", b"raw"),
        (bytearray(b"raw"), b"raw"),
        (datetime.datetime(2024, 1, 2, 3, 4, 5), "2024-01-02T03:04:05"),
        (
            datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc),
            "2024-01-02T03:04:05+00:00",
        ),
        (datetime.date(2024, 1, 2), "2024-01-02"),
        (datetime.time(13, 30), "13:30:00"),
        (Decimal("1.50"), "1.50"),
        (uuid.UUID("12345678-1234-5678-1234-567812345678"), "12345678-1234-5678-1234-567812345678"),
        (Color.RED, "red"),
        ({"a": 1}, '{"a": 1}'),
        ([1, 2], "[1, 2]"),
    ],
)
def test_encode_value(value, expected):
    assert encode_value(value) == expected


@pytest.mark.parametrize("value", [2**63, -(2**63) - 1, 2**70], ids=["max-plus-one", "min-minus-one", "huge"])
def test_encode_value_rejects_integers_outside_64_bits(value):
    with pytest.raises(StatementError, match="out of 64-bit range"):
        encode_value(value)


def test_encode_value_keeps_64_bit_bounds():
    assert encode_value(2**63 - 1) == 2**63 - 1
    assert encode_value(-(2**63)) == -(2**63)


def test_bind_attaches_sql_to_out_of_range_integer():
    with pytest.raises(StatementError) as exc_info:
        bind("SELECT $1", [2**64])
    assert exc_info.value.sql == "SELECT $1"


# endregion


def test_has_returning_clause():
    assert has_returning_clause("INSERT INTO t(a) VALUES ($1) RETURNING id")
    assert has_returning_clause("insert into t(a) values ($1)\n returning id")
    assert not has_returning_clause("INSERT INTO t(note) VALUES ('returning')")
    assert not has_returning_clause("INSERT INTO t(a) VALUES (1) -- RETURNING id")


def test_strip_literals_keeps_offsets():
    sql = "DELETE FROM \"t\" WHERE a = 'x;y' -- c"
    masked = strip_literals(sql)
    assert len(masked) == len(sql)
    assert ";" not in masked
    assert '"t"' not in masked
    assert '"t"' in strip_literals(sql, identifiers=False)


def test_decode_row_maps_columns_last_duplicate_wins():
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    try:
        row = conn.execute("SELECT 1 AS id, 'Ford' AS brand_name, 2 AS id").fetchone()
        rows = conn.execute("SELECT 1 AS n UNION ALL SELECT 2").fetchall()
    finally:
        conn.close()

    assert decode_row(row) == {"id": 2, "brand_name": "Ford"}
    assert decode_rows(rows) == [{"n": 1}, {"n": 2}]
    assert decode_row(None) is None
