"""Check dispatcher: executes one audit run end to end.

A run moves through ``initializing -> running -> completed``:

1. *initializing* loads the run and its item nodes in tree order and makes
   sure every item node has a result row (created ``unchecked``).
2. *running* opens one target connection and executes the selected nodes
   one at a time.  Each node's result is written in its own store
   transaction as soon as it is known.  A failing check never aborts the
   run: taxonomy errors record ``blocked``, anything else records ``fail``.
3. The rollup is recomputed and the run marked ``completed``.

If the target connection cannot be opened, or the engine itself fails
(for example the state store becomes unreachable), the run is marked
``failed`` and the error propagates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncEngine

from schema_audit.checklist.rollup import RollupAggregator
from schema_audit.checks.context import RunContext
from schema_audit.checks.registry import CheckRegistry, create_default_registry
from schema_audit.config import Settings, load_settings
from schema_audit.errors import AuditRunNotFoundError, CheckExecutionError, TargetConnectionError
from schema_audit.models.node import BuiltinCheckRef, CheckNode, SqlTemplateCheck
from schema_audit.models.result import (
    CheckOutcome,
    CheckOutput,
    CheckResult,
    ResultStatus,
    RunMode,
    RunPhase,
    RunSummary,
    RunType,
)
from schema_audit.sqlrunner.evaluate import status_for
from schema_audit.sqlrunner.runner import run_sql_check
from schema_audit.state.database import get_session
from schema_audit.state.repository import AuditRunRepository, CheckTreeRepository, ResultRepository
from schema_audit.target_db import TargetConnectionProvider

logger = logging.getLogger(__name__)


class CheckDispatcher:
    """Runs the checks of an audit run against a target database.

    Parameters
    ----------
    store_engine:
        Engine of the state store holding nodes, runs and results.
    settings:
        Guardrail and sampling configuration; loaded from the environment
        when omitted.
    connection_provider:
        Opens the target connection; defaults to
        :class:`~schema_audit.target_db.TargetConnectionProvider`.
    registry:
        Built-in checks available to nodes; defaults to the shipped set.
    """

    def __init__(
        self,
        store_engine: AsyncEngine,
        *,
        settings: Settings | None = None,
        connection_provider: TargetConnectionProvider | None = None,
        registry: CheckRegistry | None = None,
    ) -> None:
        self._engine = store_engine
        self._settings = settings or load_settings()
        self._provider = connection_provider or TargetConnectionProvider(self._settings)
        self._registry = registry or create_default_registry()
        self._rollup = RollupAggregator(store_engine)

    async def run(
        self,
        run_id: str,
        target_url: str,
        schemas: Sequence[str],
        mode: RunMode = RunMode.ALL,
        node_ids: Sequence[str] | None = None,
    ) -> RunSummary:
        """Execute the run and return its summary.

        Raises
        ------
        ValueError
            ``mode`` is ``items`` but no node ids were given.
        AuditRunNotFoundError
            The run does not exist.
        TargetConnectionError
            The target database could not be reached.
        """
        mode = RunMode(mode)
        if mode == RunMode.ITEMS and not node_ids:
            raise ValueError("mode 'items' requires at least one node id")

        nodes = await self._initialize(run_id)
        selected = self._select(nodes, mode, node_ids)
        logger.info(
            "Running %d of %d item node(s) for run %s on schemas %s",
            len(selected),
            len(nodes),
            run_id,
            list(schemas),
        )

        try:
            async with self._provider.connect(target_url) as conn:
                await self._set_phase(run_id, RunPhase.RUNNING)
                context = RunContext(conn, schemas, self._settings)
                for node in selected:
                    if node.is_manual:
                        logger.debug("Skipping manual item %s", node.id)
                        continue
                    result = await self._execute_node(context, run_id, node)
                    await self._record(result)
        except TargetConnectionError as exc:
            await self._set_phase(run_id, RunPhase.FAILED, str(exc))
            raise
        except Exception as exc:
            logger.exception("Run %s aborted by an unexpected error", run_id)
            await self._set_phase(run_id, RunPhase.FAILED, f"{type(exc).__name__}: {exc}")
            raise

        rollup = await self._rollup.recompute(run_id, phase=RunPhase.COMPLETED)
        return RunSummary(ok=not rollup.is_failing, run_id=run_id, phase=RunPhase.COMPLETED, rollup=rollup)

    # -- phases ------------------------------------------------------------

    async def _initialize(self, run_id: str) -> list[CheckNode]:
        async with get_session(self._engine) as session:
            runs = AuditRunRepository(session)
            run = await runs.get(run_id)
            if run is None:
                raise AuditRunNotFoundError(run_id)
            await runs.set_phase(run_id, RunPhase.INITIALIZING)

            nodes = await CheckTreeRepository(session).list_item_nodes(run.template_version_id)
            await ResultRepository(session).ensure_results(run_id, nodes)
        return nodes

    @staticmethod
    def _select(nodes: list[CheckNode], mode: RunMode, node_ids: Sequence[str] | None) -> list[CheckNode]:
        if mode == RunMode.ALL:
            return nodes
        wanted = set(node_ids or ())
        selected = [node for node in nodes if node.id in wanted]
        unknown = wanted - {node.id for node in selected}
        if unknown:
            logger.warning("Ignoring unknown node id(s): %s", ", ".join(sorted(unknown)))
        return selected

    async def _set_phase(self, run_id: str, phase: RunPhase, error_message: str | None = None) -> None:
        async with get_session(self._engine) as session:
            await AuditRunRepository(session).set_phase(run_id, phase, error_message)

    # -- per node ----------------------------------------------------------

    async def _run_check(self, context: RunContext, node: CheckNode) -> CheckOutcome:
        check = node.check
        if isinstance(check, BuiltinCheckRef):
            found = await self._registry.resolve(check.code).execute(context)
            return CheckOutcome(
                status=status_for(node.severity, found.violations > 0),
                targets=found.targets,
                issue_count=found.violations,
                output=CheckOutput(summary=found.summary, stats=found.stats, rows=found.rows),
            )
        if isinstance(check, SqlTemplateCheck):
            return await run_sql_check(
                context.conn,
                check,
                node.severity,
                context.template_variables(check.variables),
                context.executor,
                sample_rows=self._settings.sample_rows,
            )
        raise TypeError(f"node {node.id} has no executable check")

    async def _execute_node(self, context: RunContext, run_id: str, node: CheckNode) -> CheckResult:
        start = time.monotonic()
        try:
            outcome = await self._run_check(context, node)
        except CheckExecutionError as exc:
            logger.warning("Check %s (%s) blocked: %s", node.id, node.title, exc)
            outcome = CheckOutcome(
                status=ResultStatus.BLOCKED,
                output=CheckOutput(summary=str(exc), error=str(exc)),
            )
        except Exception as exc:
            logger.exception("Check %s (%s) raised an unexpected error", node.id, node.title)
            message = f"{type(exc).__name__}: {exc}"
            outcome = CheckOutcome(
                status=ResultStatus.FAIL,
                output=CheckOutput(summary=message, error=message),
            )
        duration_ms = int((time.monotonic() - start) * 1000)

        logger.info(
            "Check %s -> %s (%d issue(s), %dms)",
            node.id,
            outcome.status.value,
            outcome.issue_count,
            duration_ms,
            extra={"run_id": run_id, "node_id": node.id},
        )
        return CheckResult(
            run_id=run_id,
            node_id=node.id,
            status=outcome.status,
            severity=node.severity,
            run_type=RunType.AUTOMATIC,
            targets=outcome.targets,
            output=outcome.output,
            issue_count=outcome.issue_count,
            duration_ms=duration_ms,
            executed_at=datetime.now(UTC),
        )

    async def _record(self, result: CheckResult) -> None:
        async with get_session(self._engine) as session:
            await ResultRepository(session).record_result(result)


async def run_checks(
    store_engine: AsyncEngine,
    run_id: str,
    target_url: str,
    schemas: Sequence[str],
    mode: RunMode = RunMode.ALL,
    node_ids: Sequence[str] | None = None,
    *,
    settings: Settings | None = None,
) -> RunSummary:
    """Execute an audit run with the default provider and registry."""
    dispatcher = CheckDispatcher(store_engine, settings=settings)
    return await dispatcher.run(run_id, target_url, schemas, mode, node_ids)
