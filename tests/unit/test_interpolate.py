"""Unit tests for schema_audit.sqlrunner.interpolate."""

from __future__ import annotations

import pytest

from schema_audit.errors import InterpolationError, InvalidIdentifier, MissingVariable, UnsafePlaceholder
from schema_audit.sqlrunner.interpolate import interpolate_template, placeholders, quote_literal

# ---------------------------------------------------------------------------
# Literal rendering
# ---------------------------------------------------------------------------


class TestQuoteLiteral:
    def test_string_is_single_quoted(self):
        assert quote_literal("public") == "'public'"

    def test_embedded_quote_is_doubled(self):
        assert quote_literal("O'Brien") == "'O''Brien'"

    def test_numbers_are_bare(self):
        assert quote_literal(42) == "42"
        assert quote_literal(2.5) == "2.5"

    def test_booleans(self):
        assert quote_literal(True) == "TRUE"
        assert quote_literal(False) == "FALSE"

    def test_none_is_null(self):
        assert quote_literal(None) == "NULL"

    def test_list_is_comma_joined(self):
        assert quote_literal(["public", "sales"]) == "'public', 'sales'"

    def test_list_elements_are_escaped(self):
        assert quote_literal(["a'b", None, 3]) == "'a''b', NULL, 3"


# ---------------------------------------------------------------------------
# Placeholder expansion
# ---------------------------------------------------------------------------


class TestInterpolateTemplate:
    def test_schemas_list_renders_as_literals(self):
        sql = interpolate_template(
            "SELECT * FROM t WHERE schema_name IN ({{schemas}})",
            {"schemas": ["public", "sales"]},
        )
        assert sql == "SELECT * FROM t WHERE schema_name IN ('public', 'sales')"

    def test_identifier_is_emitted_verbatim(self):
        sql = interpolate_template("SELECT * FROM {{schema}}.{{table}}", {"schema": "public", "table": "orders"})
        assert sql == "SELECT * FROM public.orders"

    def test_whitespace_inside_braces_is_ignored(self):
        sql = interpolate_template("SELECT {{ column }} FROM x", {"column": "email"})
        assert sql == "SELECT email FROM x"

    def test_placeholder_spanning_lines(self):
        sql = interpolate_template("SELECT * FROM {{\n  schema\n}}.t", {"schema": "public"})
        assert sql == "SELECT * FROM public.t"

    def test_unknown_placeholder_spanning_lines_is_unsafe(self):
        with pytest.raises(UnsafePlaceholder):
            interpolate_template("SELECT {{\n  secret\n}}", {"secret": "x"})

    def test_threshold_dotted_path(self):
        sql = interpolate_template(
            "SELECT 1 WHERE n > {{threshold.max_rows}}",
            {"threshold": {"max_rows": 1000}},
        )
        assert sql == "SELECT 1 WHERE n > 1000"

    def test_repeated_placeholder(self):
        sql = interpolate_template("{{schema}}.a JOIN {{schema}}.b", {"schema": "s"})
        assert sql == "s.a JOIN s.b"

    def test_template_without_placeholders_is_unchanged(self):
        assert interpolate_template("SELECT 1", {}) == "SELECT 1"

    def test_injection_through_value_stays_inside_literal(self):
        sql = interpolate_template(
            "SELECT * FROM t WHERE s IN ({{schemas}})",
            {"schemas": ["x'); DROP TABLE t; --"]},
        )
        assert sql == "SELECT * FROM t WHERE s IN ('x''); DROP TABLE t; --')"


class TestInterpolationErrors:
    def test_unknown_root_is_unsafe(self):
        with pytest.raises(UnsafePlaceholder) as exc_info:
            interpolate_template("SELECT {{password}}", {"password": "x"})
        assert exc_info.value.code == "UnsafePlaceholder"
        assert exc_info.value.placeholder == "password"

    def test_dotted_identifier_root_is_unsafe(self):
        with pytest.raises(UnsafePlaceholder):
            interpolate_template("SELECT * FROM {{schema.name}}", {"schema": {"name": "x"}})

    def test_malformed_placeholder_is_unsafe(self):
        with pytest.raises(UnsafePlaceholder):
            interpolate_template("SELECT {{schema; DROP}}", {"schema": "x"})

    def test_unsafe_reported_before_missing(self):
        # Unsafe placeholders are rejected even if an earlier one is missing.
        with pytest.raises(UnsafePlaceholder):
            interpolate_template("{{table}} {{evil}}", {})

    def test_missing_variable(self):
        with pytest.raises(MissingVariable) as exc_info:
            interpolate_template("SELECT * FROM {{table}}", {})
        assert exc_info.value.placeholder == "table"

    def test_none_value_is_missing(self):
        with pytest.raises(MissingVariable):
            interpolate_template("SELECT {{threshold}}", {"threshold": None})

    def test_missing_nested_key(self):
        with pytest.raises(MissingVariable):
            interpolate_template("SELECT {{threshold.max}}", {"threshold": {"min": 1}})

    @pytest.mark.parametrize("value", ["orders; DROP TABLE x", "a b", 'x"y', "", 5])
    def test_invalid_identifier(self, value):
        with pytest.raises(InvalidIdentifier):
            interpolate_template("SELECT * FROM {{table}}", {"table": value})

    def test_identifier_with_dash_and_dot_allowed(self):
        assert interpolate_template("{{table}}", {"table": "my-db.orders"}) == "my-db.orders"

    def test_all_errors_share_base(self):
        with pytest.raises(InterpolationError):
            interpolate_template("{{nope}}", {})


class TestPlaceholders:
    def test_lists_names_in_order(self):
        assert placeholders("{{ schema }} {{table}} {{schema}}") == ["schema", "table", "schema"]
