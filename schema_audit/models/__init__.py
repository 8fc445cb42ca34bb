"""Domain models for the schema audit engine."""

from schema_audit.models.node import (
    BuiltinCheckRef,
    CheckDescriptor,
    CheckNode,
    NodeKind,
    PassFailRule,
    ResultMapping,
    Severity,
    SqlTemplateCheck,
    TargetKind,
)
from schema_audit.models.result import (
    CheckOutcome,
    CheckOutput,
    CheckResult,
    RollupStatus,
    ResultStatus,
    RunMode,
    RunPhase,
    RunRollup,
    RunSummary,
    RunType,
)
from schema_audit.models.target import (
    ColumnTarget,
    RelationshipTarget,
    TableTarget,
    TargetRef,
)

__all__ = [
    "BuiltinCheckRef",
    "CheckDescriptor",
    "CheckNode",
    "CheckOutcome",
    "CheckOutput",
    "CheckResult",
    "ColumnTarget",
    "NodeKind",
    "PassFailRule",
    "RelationshipTarget",
    "ResultMapping",
    "ResultStatus",
    "RollupStatus",
    "RunMode",
    "RunPhase",
    "RunRollup",
    "RunSummary",
    "RunType",
    "Severity",
    "SqlTemplateCheck",
    "TableTarget",
    "TargetKind",
    "TargetRef",
]
