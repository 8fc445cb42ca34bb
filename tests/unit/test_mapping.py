"""Unit tests for result-row to target mapping and pass/fail evaluation."""

from __future__ import annotations

import pytest

from schema_audit.errors import InvalidTargetEncoding
from schema_audit.models.node import PassFailRule, ResultMapping, Severity, TargetKind
from schema_audit.models.result import ResultStatus
from schema_audit.models.target import ColumnTarget, RelationshipTarget, TableTarget
from schema_audit.sqlrunner.evaluate import evaluate_result, has_issues, status_for
from schema_audit.sqlrunner.mapping import map_rows_to_targets, parse_column_list, suggest_mapping

RELATIONSHIP_COLUMNS = ["fk_name", "child_schema", "child_table", "child_cols", "parent_schema", "parent_table", "parent_cols"]


# ---------------------------------------------------------------------------
# Mapping inference
# ---------------------------------------------------------------------------


class TestSuggestMapping:
    def test_table(self):
        mapping = suggest_mapping(["schema", "table", "row_count"])
        assert mapping is not None
        assert mapping.target_kind == TargetKind.TABLE
        assert mapping.schema_col == "schema"

    def test_column(self):
        mapping = suggest_mapping(["schema", "table", "column"])
        assert mapping is not None
        assert mapping.target_kind == TargetKind.COLUMN

    def test_case_insensitive_keeps_original_names(self):
        mapping = suggest_mapping(["Schema", "TABLE"])
        assert mapping is not None
        assert mapping.schema_col == "Schema"
        assert mapping.table_col == "TABLE"

    def test_relationship_with_fk_name(self):
        mapping = suggest_mapping(RELATIONSHIP_COLUMNS)
        assert mapping is not None
        assert mapping.target_kind == TargetKind.RELATIONSHIP
        assert mapping.fk_name_col == "fk_name"

    def test_no_match(self):
        assert suggest_mapping(["id", "email"]) is None


class TestResultMappingValidation:
    def test_missing_role_rejected(self):
        with pytest.raises(ValueError):
            ResultMapping(target_kind=TargetKind.COLUMN, schema_col="s", table_col="t")


# ---------------------------------------------------------------------------
# Column lists
# ---------------------------------------------------------------------------


class TestParseColumnList:
    def test_native_list(self):
        assert parse_column_list(["a", "b"], "c") == ["a", "b"]

    def test_json_array(self):
        assert parse_column_list('["a", "b"]', "c") == ["a", "b"]

    def test_postgres_array_literal(self):
        assert parse_column_list("{a,b}", "c") == ["a", "b"]

    def test_quoted_postgres_element(self):
        assert parse_column_list('{"Mixed Case",b}', "c") == ["Mixed Case", "b"]

    def test_quoted_element_keeps_separator(self):
        assert parse_column_list('{"a,b",c}', "c") == ["a,b", "c"]

    def test_quoted_element_escapes(self):
        assert parse_column_list(r'{"say \"hi\"",b}', "c") == ['say "hi"', "b"]

    @pytest.mark.parametrize("value", ['{"a,b}', '{a"b,c}', '{"a"b,c}', "{a,}", "{{a},b}"])
    def test_malformed_array_literal(self, value):
        with pytest.raises(InvalidTargetEncoding):
            parse_column_list(value, "child_cols")

    @pytest.mark.parametrize("value", ["a,b", "[1, 2]", "[]", "{}", '["a"', 42, None])
    def test_unparsable(self, value):
        with pytest.raises(InvalidTargetEncoding) as exc_info:
            parse_column_list(value, "child_cols")
        assert exc_info.value.column == "child_cols"


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


class TestMapRowsToTargets:
    def test_inferred_table_targets(self):
        rows = [{"schema": "public", "table": "orders"}, {"schema": "public", "table": "items"}]
        targets = map_rows_to_targets(rows, columns=["schema", "table"])
        assert targets == [
            TableTarget(schema_name="public", table="orders"),
            TableTarget(schema_name="public", table="items"),
        ]

    def test_explicit_column_mapping(self):
        mapping = ResultMapping(target_kind=TargetKind.COLUMN, schema_col="s", table_col="t", column_col="c")
        targets = map_rows_to_targets([{"s": "public", "t": "users", "c": "email"}], mapping)
        assert targets == [ColumnTarget(schema_name="public", table="users", column="email")]

    def test_relationship_from_array_literals(self):
        row = {
            "fk_name": "fk_orders_customer",
            "child_schema": "public",
            "child_table": "orders",
            "child_cols": "{customer_id}",
            "parent_schema": "public",
            "parent_table": "customers",
            "parent_cols": '["id"]',
        }
        targets = map_rows_to_targets([row], columns=RELATIONSHIP_COLUMNS)
        assert targets == [
            RelationshipTarget(
                child_schema="public",
                child_table="orders",
                child_cols=["customer_id"],
                parent_schema="public",
                parent_table="customers",
                parent_cols=["id"],
                fk_name="fk_orders_customer",
            )
        ]

    def test_mismatched_column_lists(self):
        row = {
            "child_schema": "public",
            "child_table": "orders",
            "child_cols": ["a", "b"],
            "parent_schema": "public",
            "parent_table": "customers",
            "parent_cols": ["id"],
        }
        with pytest.raises(InvalidTargetEncoding):
            map_rows_to_targets([row])

    def test_null_identity_value(self):
        with pytest.raises(InvalidTargetEncoding):
            map_rows_to_targets([{"schema": None, "table": "orders"}])

    def test_mapping_column_absent_from_rows(self):
        mapping = ResultMapping(target_kind=TargetKind.TABLE, schema_col="s", table_col="t")
        with pytest.raises(InvalidTargetEncoding) as exc_info:
            map_rows_to_targets([{"s": "public"}], mapping)
        assert exc_info.value.column == "t"

    def test_no_inference_yields_no_targets(self):
        assert map_rows_to_targets([{"id": 1}], columns=["id"]) == []

    def test_empty_rows(self):
        assert map_rows_to_targets([], ResultMapping(target_kind=TargetKind.TABLE, schema_col="s", table_col="t")) == []


# ---------------------------------------------------------------------------
# Pass/fail evaluation
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_default_rule_expects_zero(self):
        assert not has_issues(0)
        assert has_issues(1)

    def test_fail_if_gt_threshold(self):
        rule = PassFailRule(fail_if_gt=3)
        assert not has_issues(3, rule)
        assert has_issues(4, rule)

    def test_expect_rows(self):
        rule = PassFailRule.model_validate({"expectZero": False})
        assert has_issues(0, rule)
        assert not has_issues(2, rule)

    @pytest.mark.parametrize(
        ("severity", "expected"),
        [
            (Severity.BLOCKING, ResultStatus.BLOCKED),
            (Severity.ERROR, ResultStatus.FAIL),
            (Severity.WARNING, ResultStatus.WARNING),
            (Severity.INFO, ResultStatus.FAIL),
        ],
    )
    def test_severity_with_issues(self, severity, expected):
        assert status_for(severity, True) == expected

    @pytest.mark.parametrize("severity", list(Severity))
    def test_no_issues_is_pass(self, severity):
        assert status_for(severity, False) == ResultStatus.PASS

    def test_evaluate_result(self):
        assert evaluate_result(5, Severity.WARNING) == ResultStatus.WARNING
        assert evaluate_result(0, Severity.BLOCKING) == ResultStatus.PASS
