"""Built-in check framework: base class, registry and per-run context."""

from schema_audit.checks.base import BuiltinCheck, BuiltinOutcome
from schema_audit.checks.context import RunContext
from schema_audit.checks.registry import CheckRegistry, create_default_registry

__all__ = [
    "BuiltinCheck",
    "BuiltinOutcome",
    "CheckRegistry",
    "RunContext",
    "create_default_registry",
]
