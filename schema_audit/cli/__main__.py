"""Entry point for `python -m schema_audit.cli` and the `schema-audit` console script."""

from __future__ import annotations

from schema_audit.cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
