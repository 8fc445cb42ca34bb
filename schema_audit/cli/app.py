"""schema-audit CLI application.

Commands:

* ``init-store``   create the state store tables.
* ``import-tree``  load a check tree from a JSON file.
* ``create-run``   create an audit run for a template version.
* ``run``          execute an audit run against a target database.
* ``test-sql``     preview a candidate check query against a target.

Human-readable output goes to *stderr* via Rich; ``--json`` writes
machine-readable results to *stdout* instead.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from schema_audit.cli.display import display_query_preview, display_run_summary
from schema_audit.config import Settings, load_settings
from schema_audit.errors import AuditRunNotFoundError, CheckExecutionError, TargetConnectionError
from schema_audit.logging_config import configure_logging

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="schema-audit",
    help="schema-audit - run schema audit checks against a live database",
    no_args_is_help=True,
)
console = Console(stderr=True)

_json_output: bool = False
_settings: Settings | None = None


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _settings  # noqa: PLW0603
    _json_output = json_mode
    _settings = load_settings()
    configure_logging(_settings)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_settings(database_url: str | None = None) -> Settings:
    settings = _settings or load_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    return settings


def _store_engine(settings: Settings) -> Any:
    from schema_audit.state.database import get_engine

    return get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


def _parse_vars(pairs: list[str] | None) -> dict[str, Any]:
    """Parse ``key=value`` pairs; values that are valid JSON are decoded."""
    variables: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Invalid variable '{pair}': expected key=value[/red]")
            raise typer.Exit(code=3)
        try:
            variables[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            variables[key.strip()] = raw
    return variables


_DATABASE_URL_OPTION = typer.Option(
    None,
    "--database-url",
    help="State store URL (defaults to SCHEMA_AUDIT_DATABASE_URL).",
)


# ---------------------------------------------------------------------------
# init-store
# ---------------------------------------------------------------------------


@app.command("init-store")
def init_store(database_url: str | None = _DATABASE_URL_OPTION) -> None:
    """Create the state store tables if they do not exist."""
    from schema_audit.state.sqlite_adapter import create_tables

    settings = _get_settings(database_url)

    async def _init() -> None:
        engine = _store_engine(settings)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    try:
        asyncio.run(_init())
    except Exception as exc:
        console.print(f"[red]Failed to initialise state store: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _emit_json({"ok": True, "database_url": settings.database_url})
    else:
        console.print("[green]State store ready.[/green]")


# ---------------------------------------------------------------------------
# import-tree
# ---------------------------------------------------------------------------


@app.command("import-tree")
def import_tree(
    tree_path: Path = typer.Argument(
        ...,
        help="JSON file with 'template_version_id' and a 'nodes' list.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    database_url: str | None = _DATABASE_URL_OPTION,
) -> None:
    """Load a check tree into the state store."""
    from pydantic import ValidationError

    from schema_audit.models.node import CheckNode
    from schema_audit.state.database import get_session
    from schema_audit.state.repository import CheckTreeRepository

    settings = _get_settings(database_url)
    try:
        document = json.loads(tree_path.read_text(encoding="utf-8"))
        version_id = document["template_version_id"]
        nodes = [CheckNode.model_validate({**raw, "template_version_id": version_id}) for raw in document["nodes"]]
    except (OSError, KeyError, TypeError, json.JSONDecodeError, ValidationError) as exc:
        console.print(f"[red]Invalid check tree file: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    async def _import() -> None:
        engine = _store_engine(settings)
        try:
            async with get_session(engine) as session:
                repo = CheckTreeRepository(session)
                for node in nodes:
                    await repo.add_node(node)
        finally:
            await engine.dispose()

    try:
        asyncio.run(_import())
    except Exception as exc:
        console.print(f"[red]Failed to import check tree: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _emit_json({"template_version_id": version_id, "nodes": len(nodes)})
    else:
        console.print(f"Imported [bold]{len(nodes)}[/bold] node(s) for version [bold]{version_id}[/bold]")


# ---------------------------------------------------------------------------
# create-run
# ---------------------------------------------------------------------------


@app.command("create-run")
def create_run(
    template_version_id: str = typer.Argument(..., help="Template version to audit."),
    run_id: str | None = typer.Option(None, "--run-id", help="Explicit run id (random if omitted)."),
    database_url: str | None = _DATABASE_URL_OPTION,
) -> None:
    """Create an audit run in the pending phase."""
    from schema_audit.state.database import get_session
    from schema_audit.state.repository import AuditRunRepository

    settings = _get_settings(database_url)

    async def _create() -> str:
        engine = _store_engine(settings)
        try:
            async with get_session(engine) as session:
                row = await AuditRunRepository(session).create(template_version_id, run_id=run_id)
                return row.id
        finally:
            await engine.dispose()

    try:
        created_id = asyncio.run(_create())
    except Exception as exc:
        console.print(f"[red]Failed to create run: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _emit_json({"run_id": created_id, "template_version_id": template_version_id})
    else:
        console.print(f"Created run [bold]{created_id}[/bold]")


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@app.command()
def run(
    run_id: str = typer.Argument(..., help="Audit run to execute."),
    target: str = typer.Option(..., "--target", "-t", help="Target database URL."),
    schemas: list[str] = typer.Option(..., "--schema", "-s", help="Schema to audit (repeatable)."),
    node_ids: list[str] | None = typer.Option(
        None,
        "--node",
        "-n",
        help="Only run these node ids (repeatable); all item nodes when omitted.",
    ),
    database_url: str | None = _DATABASE_URL_OPTION,
) -> None:
    """Execute an audit run and print its results.

    Exits with code 1 when the run rolls up to ``fail`` or ``blocked``.
    """
    from schema_audit.checklist.dispatcher import CheckDispatcher
    from schema_audit.models.result import RunMode
    from schema_audit.state.database import get_session
    from schema_audit.state.repository import CheckTreeRepository, ResultRepository

    settings = _get_settings(database_url)
    mode = RunMode.ITEMS if node_ids else RunMode.ALL

    async def _run() -> tuple[Any, list[Any], dict[str, str]]:
        engine = _store_engine(settings)
        try:
            summary = await CheckDispatcher(engine, settings=settings).run(
                run_id, target, schemas, mode, node_ids or None
            )
            async with get_session(engine) as session:
                results = await ResultRepository(session).list_for_run(run_id)
                run_row = await _load_run(session, run_id)
                nodes = await CheckTreeRepository(session).list_nodes(run_row.template_version_id)
            return summary, results, {node.id: node.title or node.id for node in nodes}
        finally:
            await engine.dispose()

    try:
        summary, results, titles = asyncio.run(_run())
    except (AuditRunNotFoundError, TargetConnectionError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _emit_json(
            {
                "summary": summary.model_dump(mode="json"),
                "results": [result.model_dump(mode="json") for result in results],
            }
        )
    else:
        display_run_summary(console, summary, results, titles)

    if not summary.ok:
        raise typer.Exit(code=1)


async def _load_run(session: Any, run_id: str) -> Any:
    from schema_audit.state.repository import AuditRunRepository

    row = await AuditRunRepository(session).get(run_id)
    if row is None:
        raise AuditRunNotFoundError(run_id)
    return row


# ---------------------------------------------------------------------------
# test-sql
# ---------------------------------------------------------------------------


@app.command("test-sql")
def test_sql(
    target: str = typer.Option(..., "--target", "-t", help="Target database URL."),
    sql: str | None = typer.Option(None, "--sql", help="SQL template to run."),
    sql_file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        help="Read the SQL template from a file.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    schemas: list[str] | None = typer.Option(None, "--schema", "-s", help="Schema variable (repeatable)."),
    variables: list[str] | None = typer.Option(None, "--var", help="Template variable as key=value (repeatable)."),
) -> None:
    """Run a candidate check query under the guardrails and suggest a mapping."""
    from schema_audit.sqlrunner.executor import GuardedExecutor
    from schema_audit.sqlrunner.runner import preview_query
    from schema_audit.target_db import TargetConnectionProvider

    if (sql is None) == (sql_file is None):
        console.print("[red]Provide exactly one of --sql or --file.[/red]")
        raise typer.Exit(code=3)
    template = sql if sql is not None else sql_file.read_text(encoding="utf-8")  # type: ignore[union-attr]

    settings = _get_settings()
    bag = _parse_vars(variables)
    if schemas:
        bag["schemas"] = list(schemas)
        if len(schemas) == 1:
            bag["schema"] = schemas[0]

    async def _preview() -> Any:
        executor = GuardedExecutor(statement_timeout_ms=settings.statement_timeout_ms, row_cap=settings.row_cap)
        async with TargetConnectionProvider(settings).connect(target) as conn:
            return await preview_query(conn, template, executor, bag)

    try:
        preview = asyncio.run(_preview())
    except CheckExecutionError as exc:
        if _json_output:
            _emit_json({"ok": False, "error": {"code": exc.code, "message": exc.message}})
        else:
            console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    except TargetConnectionError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc

    if _json_output:
        _emit_json({"ok": True, **preview.model_dump(mode="json")})
    else:
        display_query_preview(console, preview)
