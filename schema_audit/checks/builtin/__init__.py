"""Built-in structural checks."""

from schema_audit.checks.builtin.fk_has_violations import FkHasViolationsCheck
from schema_audit.checks.builtin.fk_not_indexed import FkNotIndexedCheck
from schema_audit.checks.builtin.no_primary_key import NoPrimaryKeyCheck

__all__ = ["FkHasViolationsCheck", "FkNotIndexedCheck", "NoPrimaryKeyCheck"]
