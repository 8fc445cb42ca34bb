"""Pass/fail evaluation shared by built-in and SQL-template checks."""

from __future__ import annotations

from schema_audit.models.node import PassFailRule, Severity
from schema_audit.models.result import ResultStatus

# Status assigned to a check with issues, by node severity.
_SEVERITY_STATUS: dict[Severity, ResultStatus] = {
    Severity.BLOCKING: ResultStatus.BLOCKED,
    Severity.WARNING: ResultStatus.WARNING,
}


def has_issues(row_count: int, rule: PassFailRule | None = None) -> bool:
    """Return True if *row_count* represents an issue under *rule*."""
    rule = rule or PassFailRule()
    if rule.expect_zero:
        return row_count > rule.fail_if_gt
    return row_count == 0


def status_for(severity: Severity, issues: bool) -> ResultStatus:
    """Map a node severity onto a result status.

    ``blocking`` -> ``blocked``, ``warning`` -> ``warning``, anything else
    -> ``fail``; no issues is always ``pass``.
    """
    if not issues:
        return ResultStatus.PASS
    return _SEVERITY_STATUS.get(severity, ResultStatus.FAIL)


def evaluate_result(row_count: int, severity: Severity, rule: PassFailRule | None = None) -> ResultStatus:
    """Convenience wrapper: :func:`has_issues` followed by :func:`status_for`."""
    return status_for(severity, has_issues(row_count, rule))
