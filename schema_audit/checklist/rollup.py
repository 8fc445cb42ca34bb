"""Run-level rollup of per-node check results.

The rollup status is the most severe status present, with precedence
``blocked > fail > warning > incomplete > pass``: any unchecked result
makes an otherwise clean run ``incomplete``.  A run with no results at all
rolls up to ``pass``.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncEngine

from schema_audit.errors import AuditRunNotFoundError
from schema_audit.models.result import ResultStatus, RollupStatus, RunPhase, RunRollup
from schema_audit.state.database import get_session
from schema_audit.state.repository import AuditRunRepository, ResultRepository

logger = logging.getLogger(__name__)


def compute_rollup(statuses: Iterable[ResultStatus]) -> RunRollup:
    """Count *statuses* and derive the aggregate run status."""
    counts = Counter(ResultStatus(s) for s in statuses)

    if counts[ResultStatus.BLOCKED]:
        status = RollupStatus.BLOCKED
    elif counts[ResultStatus.FAIL]:
        status = RollupStatus.FAIL
    elif counts[ResultStatus.WARNING]:
        status = RollupStatus.WARNING
    elif counts[ResultStatus.UNCHECKED]:
        status = RollupStatus.INCOMPLETE
    else:
        status = RollupStatus.PASS

    return RunRollup(
        total=sum(counts.values()),
        blocked=counts[ResultStatus.BLOCKED],
        fail=counts[ResultStatus.FAIL],
        warning=counts[ResultStatus.WARNING],
        passed=counts[ResultStatus.PASS],
        unchecked=counts[ResultStatus.UNCHECKED],
        status=status,
    )


class RollupAggregator:
    """Recomputes and persists the rollup of an audit run."""

    def __init__(self, store_engine: AsyncEngine) -> None:
        self._engine = store_engine

    async def recompute(self, run_id: str, *, phase: RunPhase = RunPhase.COMPLETED) -> RunRollup:
        """Read every result of *run_id* and store the rollup in one transaction.

        Recomputing an unchanged run yields the same rollup.

        Raises
        ------
        AuditRunNotFoundError
            If the run does not exist.
        """
        async with get_session(self._engine) as session:
            runs = AuditRunRepository(session)
            if await runs.get(run_id) is None:
                raise AuditRunNotFoundError(run_id)

            statuses = await ResultRepository(session).list_statuses(run_id)
            rollup = compute_rollup(statuses)
            await runs.apply_rollup(run_id, rollup, last_run_at=datetime.now(UTC), phase=phase)

        logger.info(
            "Run %s rolled up to %s (total=%d blocked=%d fail=%d warning=%d pass=%d unchecked=%d)",
            run_id,
            rollup.status.value,
            rollup.total,
            rollup.blocked,
            rollup.fail,
            rollup.warning,
            rollup.passed,
            rollup.unchecked,
        )
        return rollup
