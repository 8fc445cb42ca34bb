"""Tests for the schema-audit CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from schema_audit.cli.app import app

runner = CliRunner()

TREE_DOCUMENT = {
    "template_version_id": "v1",
    "nodes": [
        {"id": "grp", "kind": "group", "title": "Structure"},
        {
            "id": "no-pk",
            "parent_id": "grp",
            "sort_order": 1,
            "title": "Tables have primary keys",
            "severity": "error",
            "check": {"kind": "builtin", "code": "NO_PRIMARY_KEY"},
        },
        {
            "id": "dup-email",
            "parent_id": "grp",
            "sort_order": 2,
            "title": "Customer emails are unique",
            "severity": "warning",
            "check": {
                "kind": "sql",
                "template": (
                    "SELECT email, COUNT(*) AS n FROM {{schema}}.customers "
                    "GROUP BY email HAVING COUNT(*) > 1"
                ),
                "rule": {"expectZero": True},
            },
        },
    ],
}


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch) -> dict[str, str]:
    env = {
        "SCHEMA_AUDIT_DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'store' / 'state.db'}",
        "SCHEMA_AUDIT_LOG_LEVEL": "ERROR",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture
def tree_file(tmp_path: Path) -> Path:
    path = tmp_path / "tree.json"
    path.write_text(json.dumps(TREE_DOCUMENT), encoding="utf-8")
    return path


def _invoke(*args: str):
    return runner.invoke(app, list(args))


# ---------------------------------------------------------------------------
# Store setup
# ---------------------------------------------------------------------------


class TestStoreCommands:
    def test_init_store(self, cli_env, tmp_path):
        result = _invoke("--json", "init-store")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["ok"] is True
        assert (tmp_path / "store" / "state.db").exists()

    def test_import_tree_and_create_run(self, cli_env, tree_file):
        assert _invoke("init-store").exit_code == 0

        imported = _invoke("--json", "import-tree", str(tree_file))
        assert imported.exit_code == 0, imported.output
        assert json.loads(imported.stdout) == {"template_version_id": "v1", "nodes": 3}

        created = _invoke("--json", "create-run", "v1", "--run-id", "run-1")
        assert created.exit_code == 0, created.output
        assert json.loads(created.stdout)["run_id"] == "run-1"

    def test_import_invalid_tree(self, cli_env, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"nodes": []}), encoding="utf-8")
        assert _invoke("init-store").exit_code == 0

        result = _invoke("import-tree", str(bad))
        assert result.exit_code == 3


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRunCommand:
    def _prepare(self, tree_file: Path) -> None:
        assert _invoke("init-store").exit_code == 0
        assert _invoke("import-tree", str(tree_file)).exit_code == 0
        assert _invoke("create-run", "v1", "--run-id", "run-1").exit_code == 0

    def test_failing_run_exits_one(self, cli_env, tree_file, target_url):
        self._prepare(tree_file)

        result = _invoke("--json", "run", "run-1", "--target", target_url, "--schema", "main")

        assert result.exit_code == 1, result.output
        payload = json.loads(result.stdout)
        assert payload["summary"]["rollup"]["status"] == "fail"
        assert payload["summary"]["ok"] is False
        assert payload["summary"]["phase"] == "completed"
        statuses = {r["node_id"]: r["status"] for r in payload["results"]}
        assert statuses == {"no-pk": "fail", "dup-email": "warning"}

    def test_selected_node_only(self, cli_env, tree_file, target_url):
        self._prepare(tree_file)

        result = _invoke("--json", "run", "run-1", "-t", target_url, "-s", "main", "--node", "dup-email")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["summary"]["rollup"]["status"] == "warning"
        assert payload["summary"]["ok"] is True

    def test_human_output(self, cli_env, tree_file, target_url):
        self._prepare(tree_file)
        result = _invoke("run", "run-1", "-t", target_url, "-s", "main")
        assert result.exit_code == 1

    def test_unknown_run_exits_three(self, cli_env, target_url):
        assert _invoke("init-store").exit_code == 0
        result = _invoke("run", "missing", "-t", target_url, "-s", "main")
        assert result.exit_code == 3


# ---------------------------------------------------------------------------
# test-sql
# ---------------------------------------------------------------------------


class TestTestSqlCommand:
    def test_preview_with_mapping_suggestion(self, cli_env, target_url):
        result = _invoke(
            "--json",
            "test-sql",
            "--target",
            target_url,
            "--sql",
            "SELECT 'main' AS schema, name AS \"table\" FROM {{schema}}.sqlite_master WHERE name = 'audit_log'",
            "--schema",
            "main",
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["ok"] is True
        assert payload["rows"] == [{"schema": "main", "table": "audit_log"}]
        assert payload["mapping_suggestion"]["target_kind"] == "table"

    def test_variables(self, cli_env, target_url):
        result = _invoke(
            "--json",
            "test-sql",
            "-t",
            target_url,
            "--sql",
            "SELECT id FROM {{table}} WHERE id > {{threshold.min}}",
            "--var",
            "table=customers",
            "--var",
            'threshold={"min": 1}',
        )

        assert result.exit_code == 0, result.output
        assert [row["id"] for row in json.loads(result.stdout)["rows"]] == [2, 3]

    def test_sql_from_file(self, cli_env, target_url, tmp_path):
        sql_file = tmp_path / "check.sql"
        sql_file.write_text("SELECT COUNT(*) AS n FROM orders;\n", encoding="utf-8")

        result = _invoke("--json", "test-sql", "-t", target_url, "--file", str(sql_file))

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["rows"] == [{"n": 4}]

    def test_rejected_statement(self, cli_env, target_url):
        result = _invoke("--json", "test-sql", "-t", target_url, "--sql", "DELETE FROM customers")

        assert result.exit_code == 1
        payload = json.loads(result.stdout)
        assert payload == {
            "ok": False,
            "error": {"code": "NotAReadQuery", "message": "only SELECT, WITH or EXPLAIN statements are allowed"},
        }

    def test_requires_exactly_one_source(self, cli_env, target_url):
        assert _invoke("test-sql", "-t", target_url).exit_code == 3

    def test_bad_variable(self, cli_env, target_url):
        result = _invoke("test-sql", "-t", target_url, "--sql", "SELECT 1", "--var", "novalue")
        assert result.exit_code == 3
