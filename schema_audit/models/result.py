"""Check results, run rollups and run summaries."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from schema_audit.models.node import Severity
from schema_audit.models.target import TargetRef


class ResultStatus(str, Enum):
    """Outcome of one check node within one audit run."""

    UNCHECKED = "unchecked"
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"
    BLOCKED = "blocked"


class RunType(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class RollupStatus(str, Enum):
    """Aggregate status of a run, in decreasing precedence."""

    BLOCKED = "blocked"
    FAIL = "fail"
    WARNING = "warning"
    INCOMPLETE = "incomplete"
    PASS = "pass"


class RunPhase(str, Enum):
    """Lifecycle of one execution of an audit run."""

    PENDING = "pending"
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunMode(str, Enum):
    ALL = "all"
    ITEMS = "items"


class CheckOutput(BaseModel):
    """What a check produced, bounded for storage and display."""

    summary: str = ""
    stats: dict[str, Any] = Field(default_factory=dict)
    rows: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Bounded sample of raw output rows (never the full result set).",
    )
    error: str | None = None


class CheckOutcome(BaseModel):
    """Result of executing one check, before it is written to the store."""

    status: ResultStatus
    targets: list[TargetRef] = Field(default_factory=list)
    output: CheckOutput = Field(default_factory=CheckOutput)
    issue_count: int = 0


class CheckResult(BaseModel):
    """One node's outcome within one audit run."""

    run_id: str
    node_id: str
    status: ResultStatus = ResultStatus.UNCHECKED
    severity: Severity = Severity.INFO
    run_type: RunType = RunType.MANUAL
    targets: list[TargetRef] = Field(default_factory=list)
    output: CheckOutput | None = None
    issue_count: int = 0
    duration_ms: int | None = None
    executed_at: datetime | None = None


class RunRollup(BaseModel):
    """Counts per status and the aggregate run status."""

    total: int = 0
    blocked: int = 0
    fail: int = 0
    warning: int = 0
    passed: int = 0
    unchecked: int = 0
    status: RollupStatus = RollupStatus.INCOMPLETE

    @property
    def is_failing(self) -> bool:
        return self.status in (RollupStatus.FAIL, RollupStatus.BLOCKED)


class RunSummary(BaseModel):
    """Returned by ``run_checks``.

    ``ok`` is False when the run completed with a ``fail`` or ``blocked``
    rollup; run-level failures raise instead of returning a summary.
    """

    ok: bool
    run_id: str
    phase: RunPhase
    rollup: RunRollup
