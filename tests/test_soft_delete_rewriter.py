"""Tests for soft delete policy resolution and DELETE → UPDATE rewriting."""

import datetime

import pytest

from softdal import DeleteOptions, SoftDeleteRewriter, UnsupportedDeleteShape

NOW = datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.mark.parametrize(
    "options, session_default, expected",
    [
        (None, False, False),
        (None, True, True),
        (DeleteOptions(soft_delete=True), False, True),
        (DeleteOptions(soft_delete=False), True, False),
        (DeleteOptions(user_id=1, user_name="John Doe"), True, True),
        (DeleteOptions(user_id=1), False, False),
    ],
    ids=[
        "default-off",
        "default-on",
        "option-overrides-off",
        "option-overrides-on",
        "audit-only-uses-default-on",
        "audit-only-uses-default-off",
    ],
)
def test_resolve_policy(options, session_default, expected):
    assert SoftDeleteRewriter.resolve(options, session_default) is expected


# region Rewrite
@pytest.mark.parametrize(
    "command, values, options, expected_sql, expected_values",
    [
        (
            "DELETE FROM tmp_models WHERE id = $1",
            [3],
            None,
            "UPDATE tmp_models SET deleted_at = $2 WHERE id = $1",
            [3, NOW],
        ),
        (
            "DELETE FROM tmp_models WHERE id = $1",
            [4],
            DeleteOptions(soft_delete=True, user_id=1, user_name="John Doe"),
            "UPDATE tmp_models SET deleted_at = $2, deleted_by_id = $3, deleted_by_name = $4 WHERE id = $1",
            [4, NOW, 1, "John Doe"],
        ),
        (
            "DELETE FROM tmp_models WHERE id = $1",
            [4],
            DeleteOptions(soft_delete=True, user_name="John Doe"),
            "UPDATE tmp_models SET deleted_at = $2, deleted_by_name = $3 WHERE id = $1",
            [4, NOW, "John Doe"],
        ),
        (
            "delete from brands\n   where id = $1 and brand_name = $2;",
            [1, "Ford"],
            None,
            "UPDATE brands SET deleted_at = $3 WHERE id = $1 and brand_name = $2",
            [1, "Ford", NOW],
        ),
        (
            'DELETE FROM main."my brands" WHERE id = $1',
            [1],
            None,
            'UPDATE main."my brands" SET deleted_at = $2 WHERE id = $1',
            [1, NOW],
        ),
        (
            "DELETE FROM tmp_models AS m WHERE m.id = $1",
            [2],
            None,
            "UPDATE tmp_models AS m SET deleted_at = $2 WHERE m.id = $1",
            [2, NOW],
        ),
        (
            "DELETE FROM notes WHERE body = 'a; WHERE b RETURNING c'",
            None,
            None,
            "UPDATE notes SET deleted_at = $1 WHERE body = 'a; WHERE b RETURNING c'",
            [NOW],
        ),
    ],
    ids=[
        "plain",
        "with-auditing",
        "user-name-only",
        "lowercase-multiline-semicolon",
        "schema-qualified-quoted",
        "alias",
        "keywords-inside-literal",
    ],
)
def test_rewrite(command, values, options, expected_sql, expected_values):
    rewritten = SoftDeleteRewriter.rewrite(command, values, options, NOW)
    assert rewritten.sql == expected_sql
    assert rewritten.values == expected_values


def test_rewrite_does_not_mutate_caller_values():
    values = [7]
    SoftDeleteRewriter.rewrite("DELETE FROM t WHERE id = $1", values, None, NOW)
    assert values == [7]


# endregion


@pytest.mark.parametrize(
    "command",
    [
        "DELETE FROM brands",
        "DELETE FROM brands WHERE id = 1 RETURNING id",
        "DELETE FROM brands WHERE id = 1; DROP TABLE brands",
        "WITH x AS (SELECT 1) DELETE FROM brands WHERE id IN x",
        "DELETE FROM brands USING models WHERE brands.id = models.brand_id",
        "UPDATE brands SET brand_name = 'x' WHERE id = 1",
        "TRUNCATE brands",
        "DELETE brands WHERE id = 1",
        "DELETE FROM brands ORDER WHERE id = 1",
        "DELETE FROM brands SET WHERE id = 1",
    ],
    ids=[
        "no-where",
        "returning",
        "multiple-statements",
        "cte-prefix",
        "using",
        "not-a-delete",
        "truncate",
        "missing-from",
        "order-as-alias",
        "set-as-alias",
    ],
)
def test_unsupported_shapes_are_rejected(command):
    with pytest.raises(UnsupportedDeleteShape) as exc_info:
        SoftDeleteRewriter.rewrite(command, None, None, NOW)
    assert exc_info.value.command == command


def test_parse_splits_table_alias_and_predicate():
    target = SoftDeleteRewriter.parse("DELETE FROM models m WHERE m.brand_id = $1 AND m.deleted_at IS NULL")
    assert target.table == "models"
    assert target.alias == "m"
    assert target.predicate == "m.brand_id = $1 AND m.deleted_at IS NULL"
