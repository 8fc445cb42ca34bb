"""Check tree nodes and their check descriptors.

An item node carries at most one check descriptor, a tagged variant
resolved once when the node is loaded:

* :class:`BuiltinCheckRef` -- a reference code into the built-in check set.
* :class:`SqlTemplateCheck` -- an operator-authored SQL template plus its
  result mapping and pass/fail rule.

Item nodes without a descriptor are manual items; the engine never executes
them.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Severity(str, Enum):
    """How serious an issue found by a check is."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    BLOCKING = "blocking"


class NodeKind(str, Enum):
    GROUP = "group"
    ITEM = "item"


class TargetKind(str, Enum):
    TABLE = "table"
    COLUMN = "column"
    RELATIONSHIP = "relationship"


# Mapping fields required for each target kind.
_REQUIRED_MAPPING_FIELDS: dict[TargetKind, tuple[str, ...]] = {
    TargetKind.TABLE: ("schema_col", "table_col"),
    TargetKind.COLUMN: ("schema_col", "table_col", "column_col"),
    TargetKind.RELATIONSHIP: (
        "child_schema_col",
        "child_table_col",
        "child_cols_col",
        "parent_schema_col",
        "parent_table_col",
        "parent_cols_col",
    ),
}


class ResultMapping(BaseModel):
    """Explicit assignment of result columns to semantic target roles."""

    target_kind: TargetKind
    schema_col: str | None = None
    table_col: str | None = None
    column_col: str | None = None
    child_schema_col: str | None = None
    child_table_col: str | None = None
    child_cols_col: str | None = None
    parent_schema_col: str | None = None
    parent_table_col: str | None = None
    parent_cols_col: str | None = None
    fk_name_col: str | None = None

    @model_validator(mode="after")
    def _required_roles_present(self) -> ResultMapping:
        missing = [f for f in _REQUIRED_MAPPING_FIELDS[self.target_kind] if not getattr(self, f)]
        if missing:
            raise ValueError(f"{self.target_kind.value} mapping requires {', '.join(missing)}")
        return self


class PassFailRule(BaseModel):
    """Decides whether a row count represents an issue.

    With ``expect_zero`` (the default) any row count above ``fail_if_gt``
    is an issue; with ``expect_zero=False`` an empty result is the issue.
    """

    model_config = ConfigDict(populate_by_name=True)

    expect_zero: bool = Field(default=True, alias="expectZero")
    fail_if_gt: int = Field(default=0, ge=0, alias="failIfGt")


class BuiltinCheckRef(BaseModel):
    kind: Literal["builtin"] = "builtin"
    code: str = Field(..., min_length=1, description="Built-in check reference code.")


class SqlTemplateCheck(BaseModel):
    kind: Literal["sql"] = "sql"
    template: str = Field(..., min_length=1, description="Parameterized SQL template.")
    mapping: ResultMapping | None = Field(
        default=None,
        description="Explicit result mapping; inferred from column names when None.",
    )
    rule: PassFailRule = Field(default_factory=PassFailRule)
    variables: dict[str, Any] = Field(
        default_factory=dict,
        description="Node-level template variables (table, column, threshold...).",
    )


CheckDescriptor = Annotated[BuiltinCheckRef | SqlTemplateCheck, Field(discriminator="kind")]


class CheckNode(BaseModel):
    """One node of an audit template's check tree."""

    model_config = ConfigDict(frozen=True)

    id: str
    template_version_id: str
    parent_id: str | None = None
    sort_order: int = 0
    kind: NodeKind = NodeKind.ITEM
    title: str = ""
    severity: Severity = Severity.WARNING
    check: CheckDescriptor | None = None

    @model_validator(mode="after")
    def _groups_have_no_check(self) -> CheckNode:
        if self.kind == NodeKind.GROUP and self.check is not None:
            raise ValueError("group nodes cannot carry a check descriptor")
        return self

    @property
    def is_manual(self) -> bool:
        """True for item nodes the engine does not execute."""
        return self.kind == NodeKind.ITEM and self.check is None
