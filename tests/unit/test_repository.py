"""Unit tests for the state store repositories (SQLite backend)."""

from __future__ import annotations

from datetime import UTC, datetime

from schema_audit.models.node import (
    BuiltinCheckRef,
    CheckNode,
    NodeKind,
    PassFailRule,
    ResultMapping,
    Severity,
    SqlTemplateCheck,
    TargetKind,
)
from schema_audit.models.result import CheckOutput, CheckResult, ResultStatus, RunPhase, RunType
from schema_audit.models.target import RelationshipTarget, TableTarget
from schema_audit.state.database import get_session
from schema_audit.state.repository import AuditRunRepository, CheckTreeRepository, ResultRepository
from schema_audit.state.tables import CheckNodeTable

SQL_NODE = CheckNode(
    id="sql-1",
    template_version_id="v1",
    parent_id="grp",
    sort_order=2,
    title="Duplicate emails",
    severity=Severity.BLOCKING,
    check=SqlTemplateCheck(
        template="SELECT * FROM {{schema}}.customers",
        mapping=ResultMapping(target_kind=TargetKind.TABLE, schema_col="s", table_col="t"),
        rule=PassFailRule(expect_zero=True, fail_if_gt=3),
        variables={"threshold": {"max": 5}},
    ),
)
GROUP_NODE = CheckNode(id="grp", template_version_id="v1", kind=NodeKind.GROUP, title="Integrity")
BUILTIN_NODE = CheckNode(
    id="pk-1",
    template_version_id="v1",
    parent_id="grp",
    sort_order=1,
    check=BuiltinCheckRef(code="NO_PRIMARY_KEY"),
)
MANUAL_NODE = CheckNode(id="manual-1", template_version_id="v1", sort_order=5, title="Review naming")


async def _seed_tree(engine) -> None:
    async with get_session(engine) as session:
        repo = CheckTreeRepository(session)
        for node in (SQL_NODE, GROUP_NODE, BUILTIN_NODE, MANUAL_NODE):
            await repo.add_node(node)


# ---------------------------------------------------------------------------
# CheckTreeRepository
# ---------------------------------------------------------------------------


class TestCheckTreeRepository:
    async def test_node_round_trip(self, store_engine):
        await _seed_tree(store_engine)
        async with get_session(store_engine) as session:
            nodes = {node.id: node for node in await CheckTreeRepository(session).list_nodes("v1")}

        assert nodes["sql-1"] == SQL_NODE
        assert nodes["pk-1"] == BUILTIN_NODE
        assert nodes["manual-1"].is_manual
        assert nodes["grp"].kind == NodeKind.GROUP

    async def test_rule_stored_with_aliases(self, store_engine):
        await _seed_tree(store_engine)
        async with get_session(store_engine) as session:
            row = await session.get(CheckNodeTable, "sql-1")
        assert row is not None
        assert row.pass_fail_rule == {"expectZero": True, "failIfGt": 3}
        assert row.check_kind == "sql"

    async def test_item_nodes_in_tree_order(self, store_engine):
        await _seed_tree(store_engine)
        async with get_session(store_engine) as session:
            repo = CheckTreeRepository(session)
            items = await repo.list_item_nodes("v1")
            subset = await repo.list_item_nodes("v1", ["manual-1", "pk-1"])

        assert [node.id for node in items] == ["pk-1", "sql-1", "manual-1"]
        assert [node.id for node in subset] == ["pk-1", "manual-1"]

    async def test_other_version_is_isolated(self, store_engine):
        await _seed_tree(store_engine)
        async with get_session(store_engine) as session:
            assert await CheckTreeRepository(session).list_nodes("v2") == []


# ---------------------------------------------------------------------------
# ResultRepository
# ---------------------------------------------------------------------------


class TestResultRepository:
    async def test_ensure_results_is_idempotent(self, store_engine):
        async with get_session(store_engine) as session:
            await AuditRunRepository(session).create("v1", run_id="r1")
            results = ResultRepository(session)
            first = await results.ensure_results("r1", [GROUP_NODE, BUILTIN_NODE, SQL_NODE])
            second = await results.ensure_results("r1", [BUILTIN_NODE, SQL_NODE])
            rows = await results.list_for_run("r1")

        assert first == 2
        assert second == 0
        assert [row.node_id for row in rows] == ["pk-1", "sql-1"]
        assert all(row.status == ResultStatus.UNCHECKED for row in rows)
        assert rows[1].severity == Severity.BLOCKING

    async def test_ensure_keeps_existing_result(self, store_engine):
        async with get_session(store_engine) as session:
            await AuditRunRepository(session).create("v1", run_id="r1")
            results = ResultRepository(session)
            await results.ensure_results("r1", [BUILTIN_NODE])
            await results.record_result(CheckResult(run_id="r1", node_id="pk-1", status=ResultStatus.FAIL))
            await results.ensure_results("r1", [BUILTIN_NODE])
            statuses = await results.list_statuses("r1")

        assert statuses == [ResultStatus.FAIL]

    async def test_record_result_replaces_previous(self, store_engine):
        executed_at = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        first = CheckResult(
            run_id="r1",
            node_id="pk-1",
            status=ResultStatus.FAIL,
            severity=Severity.ERROR,
            run_type=RunType.AUTOMATIC,
            targets=[TableTarget(schema_name="main", table="audit_log")],
            output=CheckOutput(summary="1 tables missing primary key", rows=[{"schema": "main", "table": "audit_log"}]),
            issue_count=1,
            duration_ms=7,
            executed_at=executed_at,
        )
        relationship = RelationshipTarget(
            child_schema="main",
            child_table="orders",
            child_cols=["customer_id"],
            parent_schema="main",
            parent_table="customers",
            parent_cols=["id"],
        )
        second = first.model_copy(
            update={"status": ResultStatus.PASS, "targets": [relationship], "issue_count": 0, "output": None}
        )

        async with get_session(store_engine) as session:
            await AuditRunRepository(session).create("v1", run_id="r1")
            results = ResultRepository(session)
            await results.record_result(first)
            stored_first = await results.list_for_run("r1")
            await results.record_result(second)
            stored_second = await results.list_for_run("r1")

        assert len(stored_first) == 1
        assert stored_first[0].targets == first.targets
        assert stored_first[0].output == first.output
        assert stored_first[0].run_type == RunType.AUTOMATIC
        assert stored_first[0].duration_ms == 7

        assert len(stored_second) == 1
        assert stored_second[0].status == ResultStatus.PASS
        assert stored_second[0].targets == [relationship]
        assert stored_second[0].output is None


# ---------------------------------------------------------------------------
# AuditRunRepository
# ---------------------------------------------------------------------------


class TestAuditRunRepository:
    async def test_create_defaults(self, store_engine):
        async with get_session(store_engine) as session:
            row = await AuditRunRepository(session).create("v1")
            run_id = row.id

        async with get_session(store_engine) as session:
            run = await AuditRunRepository(session).get(run_id)

        assert run is not None
        assert len(run_id) == 32
        assert run.phase == RunPhase.PENDING.value
        assert run.status == "incomplete"
        assert run.total_count == 0

    async def test_set_phase_and_error(self, store_engine):
        async with get_session(store_engine) as session:
            runs = AuditRunRepository(session)
            await runs.create("v1", run_id="r1")
            await runs.set_phase("r1", RunPhase.FAILED, "boom")

        async with get_session(store_engine) as session:
            run = await AuditRunRepository(session).get("r1")
        assert run is not None
        assert run.phase == "failed"
        assert run.error_message == "boom"

    async def test_delete_cascades_to_results(self, store_engine):
        async with get_session(store_engine) as session:
            await AuditRunRepository(session).create("v1", run_id="r1")
            await ResultRepository(session).ensure_results("r1", [BUILTIN_NODE, SQL_NODE])

        async with get_session(store_engine) as session:
            assert await AuditRunRepository(session).delete("r1") is True
            assert await AuditRunRepository(session).delete("r1") is False

        async with get_session(store_engine) as session:
            assert await ResultRepository(session).list_for_run("r1") == []

    async def test_missing_run(self, store_engine):
        async with get_session(store_engine) as session:
            assert await AuditRunRepository(session).get("nope") is None
