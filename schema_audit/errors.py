"""Error taxonomy for the check execution engine.

Every error raised while executing a single check node derives from
:class:`CheckExecutionError`.  The dispatcher converts these into a
terminal ``blocked`` result for that node; they never abort a run.

:class:`TargetConnectionError` and :class:`AuditRunNotFoundError` are
run-level failures and propagate to the caller.
"""

from __future__ import annotations


class CheckExecutionError(Exception):
    """Base class for failures that are terminal for one check only."""

    code: str = "CheckExecutionError"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# ---------------------------------------------------------------------------
# Interpolation
# ---------------------------------------------------------------------------


class InterpolationError(CheckExecutionError):
    """A SQL template could not be expanded safely."""

    code = "InterpolationError"


class UnsafePlaceholder(InterpolationError):
    code = "UnsafePlaceholder"

    def __init__(self, placeholder: str) -> None:
        self.placeholder = placeholder
        super().__init__(f"placeholder '{{{{{placeholder}}}}}' is not an allowed variable")


class MissingVariable(InterpolationError):
    code = "MissingVariable"

    def __init__(self, placeholder: str) -> None:
        self.placeholder = placeholder
        super().__init__(f"no value supplied for placeholder '{{{{{placeholder}}}}}'")


class InvalidIdentifier(InterpolationError):
    code = "InvalidIdentifier"

    def __init__(self, placeholder: str, value: object) -> None:
        self.placeholder = placeholder
        self.value = value
        super().__init__(f"value {value!r} for '{{{{{placeholder}}}}}' is not a valid identifier")


# ---------------------------------------------------------------------------
# Read-only guard
# ---------------------------------------------------------------------------


class ReadOnlyViolation(CheckExecutionError):
    """The interpolated SQL is not an executable read-only statement."""

    code = "ReadOnlyViolation"


class WriteOperationForbidden(ReadOnlyViolation):
    code = "WriteOperationForbidden"

    def __init__(self, keyword: str) -> None:
        self.keyword = keyword
        super().__init__(f"SQL contains forbidden keyword: {keyword}")


class NotAReadQuery(ReadOnlyViolation):
    code = "NotAReadQuery"

    def __init__(self) -> None:
        super().__init__("only SELECT, WITH or EXPLAIN statements are allowed")


class MultiStatement(ReadOnlyViolation):
    code = "MultiStatement"

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(f"expected a single statement, found {count}")


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class QueryTimeout(CheckExecutionError):
    code = "QueryTimeout"

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"statement cancelled after exceeding {timeout_ms}ms")


class ExecutionError(CheckExecutionError):
    """A driver-level error (syntax, permission, connectivity)."""

    code = "ExecutionError"


# ---------------------------------------------------------------------------
# Mapping and dispatch
# ---------------------------------------------------------------------------


class InvalidTargetEncoding(CheckExecutionError):
    code = "InvalidTargetEncoding"

    def __init__(self, column: str, detail: str) -> None:
        self.column = column
        super().__init__(f"column '{column}': {detail}")


class UnknownBuiltinCheck(CheckExecutionError):
    code = "UnknownBuiltinCheck"

    def __init__(self, check_code: str) -> None:
        self.check_code = check_code
        super().__init__(f"no built-in check registered for code '{check_code}'")


# ---------------------------------------------------------------------------
# Run-level
# ---------------------------------------------------------------------------


class TargetConnectionError(Exception):
    """The target database could not be reached; fatal for the whole run."""


class AuditRunNotFoundError(LookupError):
    """The requested audit run does not exist in the state store."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Audit run {run_id} not found")
