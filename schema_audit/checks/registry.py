"""Registry of built-in checks, keyed by reference code."""

from __future__ import annotations

import logging

from schema_audit.checks.base import BuiltinCheck
from schema_audit.errors import UnknownBuiltinCheck

logger = logging.getLogger(__name__)


class CheckRegistry:
    """Maps built-in reference codes to :class:`BuiltinCheck` instances."""

    def __init__(self) -> None:
        self._checks: dict[str, BuiltinCheck] = {}

    def register(self, check: BuiltinCheck) -> None:
        """Register a check under its ``code``.

        Raises
        ------
        ValueError
            If a check with the same code is already registered.
        """
        if check.code in self._checks:
            raise ValueError(
                f"Check code {check.code} is already registered. "
                f"Unregister the existing check first."
            )
        self._checks[check.code] = check
        logger.debug("Registered built-in check: %s", check.code)

    def unregister(self, code: str) -> None:
        """Remove a check.

        Raises
        ------
        KeyError
            If the code is not registered.
        """
        if code not in self._checks:
            raise KeyError(f"Check code {code} is not registered.")
        del self._checks[code]
        logger.debug("Unregistered built-in check: %s", code)

    def get(self, code: str) -> BuiltinCheck | None:
        """Look up a check, returning ``None`` if the code is unknown."""
        return self._checks.get(code)

    def resolve(self, code: str) -> BuiltinCheck:
        """Look up a check, raising :class:`UnknownBuiltinCheck` if absent."""
        check = self._checks.get(code)
        if check is None:
            raise UnknownBuiltinCheck(code)
        return check

    def get_codes(self) -> list[str]:
        """Return all registered codes, sorted."""
        return sorted(self._checks)

    def __len__(self) -> int:
        return len(self._checks)

    def __contains__(self, code: str) -> bool:
        return code in self._checks


def create_default_registry() -> CheckRegistry:
    """Return a registry holding every built-in check shipped with the engine."""
    from schema_audit.checks.builtin import FkHasViolationsCheck, FkNotIndexedCheck, NoPrimaryKeyCheck

    registry = CheckRegistry()
    registry.register(NoPrimaryKeyCheck())
    registry.register(FkNotIndexedCheck())
    registry.register(FkHasViolationsCheck())
    return registry
