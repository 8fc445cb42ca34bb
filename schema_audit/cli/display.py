"""Rich output formatting for the schema-audit CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from schema_audit.models.result import CheckResult, RunSummary
    from schema_audit.models.target import TargetRef
    from schema_audit.sqlrunner.runner import QueryPreview


_STATUS_COLOURS: dict[str, str] = {
    "pass": "green",
    "warning": "yellow",
    "fail": "red",
    "blocked": "bold red",
    "unchecked": "dim",
    "incomplete": "dim yellow",
}

# Preview tables show at most this many rows.
_PREVIEW_ROWS = 20


def _coloured_status(status: str) -> str:
    """Return a Rich markup string with the status colour-coded."""
    colour = _STATUS_COLOURS.get(status, "white")
    return f"[{colour}]{status}[/{colour}]"


def format_target(target: TargetRef) -> str:
    """Render a target reference as a short dotted name."""
    if target.kind == "table":
        return f"{target.schema_name}.{target.table}"
    if target.kind == "column":
        return f"{target.schema_name}.{target.table}.{target.column}"
    child = ", ".join(target.child_cols)
    parent = ", ".join(target.parent_cols)
    return (
        f"{target.child_schema}.{target.child_table}({child}) -> "
        f"{target.parent_schema}.{target.parent_table}({parent})"
    )


def display_run_summary(
    console: Console,
    summary: RunSummary,
    results: Sequence[CheckResult],
    titles: dict[str, str] | None = None,
) -> None:
    """Render a run's rollup and a table of its per-node results.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    summary:
        The summary returned by the dispatcher.
    results:
        Persisted results of the run.
    titles:
        Optional node id to title mapping for the first column.
    """
    titles = titles or {}
    rollup = summary.rollup
    header = (
        f"[bold]Run:[/bold] {summary.run_id}\n"
        f"[bold]Status:[/bold] {_coloured_status(rollup.status.value)}\n"
        f"[bold]Checks:[/bold] {rollup.total} total, {rollup.passed} pass, "
        f"{rollup.warning} warning, {rollup.fail} fail, {rollup.blocked} blocked, "
        f"{rollup.unchecked} unchecked"
    )
    console.print(Panel(header, title="Audit Run", expand=False))

    table = Table(title="Check Results", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Check", style="cyan", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Status")
    table.add_column("Issues", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Summary")

    for result in results:
        duration = f"{result.duration_ms}ms" if result.duration_ms is not None else "-"
        table.add_row(
            titles.get(result.node_id, result.node_id),
            result.severity.value,
            _coloured_status(result.status.value),
            str(result.issue_count),
            duration,
            result.output.summary if result.output else "",
        )
    console.print(table)

    for result in results:
        if not result.targets:
            continue
        console.print(f"\n[bold]{titles.get(result.node_id, result.node_id)}[/bold]")
        for target in result.targets:
            console.print(f"  - {format_target(target)}")


def display_query_preview(console: Console, preview: QueryPreview) -> None:
    """Render the rows of a previewed query and its suggested mapping."""
    console.print(Panel(preview.sql, title="Executed SQL", expand=False))

    table = Table(
        title=f"{len(preview.rows)} row(s){' (capped)' if preview.truncated else ''} in {preview.duration_ms}ms",
        show_lines=False,
        pad_edge=True,
        expand=False,
    )
    for column in preview.columns:
        table.add_column(column)
    for row in preview.rows[:_PREVIEW_ROWS]:
        table.add_row(*("" if row.get(col) is None else str(row.get(col)) for col in preview.columns))
    console.print(table)

    if preview.mapping_suggestion is None:
        console.print("[dim]No target mapping could be inferred from the column names.[/dim]")
    else:
        mapping = preview.mapping_suggestion.model_dump(exclude_none=True, mode="json")
        roles = ", ".join(f"{key}={value}" for key, value in mapping.items() if key != "target_kind")
        console.print(f"Suggested mapping: [bold]{mapping['target_kind']}[/bold] ({roles})")
