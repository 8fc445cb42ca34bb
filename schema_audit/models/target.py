"""Typed references from a check result to the schema object it concerns."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class TableTarget(BaseModel):
    """A whole table."""

    kind: Literal["table"] = "table"
    schema_name: str = Field(..., description="Schema (namespace) containing the table.")
    table: str = Field(..., description="Table name.")


class ColumnTarget(BaseModel):
    """A single column of a table."""

    kind: Literal["column"] = "column"
    schema_name: str = Field(..., description="Schema (namespace) containing the table.")
    table: str = Field(..., description="Table name.")
    column: str = Field(..., description="Column name.")


class RelationshipTarget(BaseModel):
    """A foreign-key relationship between a child and a parent table.

    ``child_cols[i]`` references ``parent_cols[i]``; both lists are
    non-empty and of equal length.
    """

    kind: Literal["relationship"] = "relationship"
    child_schema: str
    child_table: str
    child_cols: list[str]
    parent_schema: str
    parent_table: str
    parent_cols: list[str]
    fk_name: str | None = None

    @model_validator(mode="after")
    def _columns_correspond(self) -> RelationshipTarget:
        if not self.child_cols or not self.parent_cols:
            raise ValueError("relationship column lists must be non-empty")
        if len(self.child_cols) != len(self.parent_cols):
            raise ValueError(
                f"relationship column lists differ in length: "
                f"{len(self.child_cols)} child vs {len(self.parent_cols)} parent"
            )
        return self


TargetRef = Annotated[
    TableTarget | ColumnTarget | RelationshipTarget,
    Field(discriminator="kind"),
]

target_list_adapter: TypeAdapter[list[TargetRef]] = TypeAdapter(list[TargetRef])
