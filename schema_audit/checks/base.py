"""Abstract base class for built-in check implementations.

All built-in checks subclass :class:`BuiltinCheck` and implement
:meth:`BuiltinCheck.execute`.  A check only reports what it found; the
dispatcher turns the violation count into a status using the node's
severity.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from schema_audit.catalog.models import ForeignKeyInfo
from schema_audit.models.target import RelationshipTarget, TargetRef

if TYPE_CHECKING:
    from schema_audit.checks.context import RunContext


class BuiltinOutcome(BaseModel):
    """What a built-in check found, before severity is applied."""

    violations: int = Field(default=0, ge=0, description="Number of offending objects.")
    targets: list[TargetRef] = Field(default_factory=list)
    summary: str = ""
    stats: dict[str, Any] = Field(default_factory=dict)
    rows: list[dict[str, Any]] = Field(default_factory=list)


class BuiltinCheck(abc.ABC):
    """Abstract base for all built-in checks.

    Implementations are stateless; everything they need comes from the
    :class:`~schema_audit.checks.context.RunContext`.
    """

    @property
    @abc.abstractmethod
    def code(self) -> str:
        """The reference code check nodes use to select this check."""

    @abc.abstractmethod
    async def execute(self, context: RunContext) -> BuiltinOutcome:
        """Run the check against the context's target connection.

        Raises
        ------
        CheckExecutionError
            A catalog or data query failed; terminal for this check only.
        """


def relationship_target(fk: ForeignKeyInfo) -> RelationshipTarget:
    """Build the relationship target a foreign key check reports."""
    return RelationshipTarget(
        child_schema=fk.child_schema,
        child_table=fk.child_table,
        child_cols=list(fk.child_cols),
        parent_schema=fk.parent_schema,
        parent_table=fk.parent_table,
        parent_cols=list(fk.parent_cols),
        fk_name=fk.name,
    )
