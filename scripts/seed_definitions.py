#!/usr/bin/env python3
"""
Create the workflow tables (if missing) and store the YAML workflow
definitions shipped in credit_workflow_config/definitions/.

A definition is skipped when its case type already has an active
definition with the same name at the same or a later version.  Storing an
active definition deactivates the previously active one for its case type.

Usage:
    python3 scripts/seed_definitions.py [--directory DIR] [--db-url URL]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from credit_workflow.db.engine import create_tables, init_engine_from_url, session_scope
from credit_workflow.exceptions import DefinitionConfigError
from credit_workflow.logging_config import configure_logging
from credit_workflow.repositories.sql import SqlWorkflowDefinitionRepository
from credit_workflow_config.loader import DEFAULT_DEFINITIONS_DIR, load_default_definitions
from credit_workflow_config.settings import load_settings


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed workflow definitions from YAML.")
    parser.add_argument(
        "--directory",
        type=Path,
        default=DEFAULT_DEFINITIONS_DIR,
        help=f"Directory of *.yaml definitions (default: {DEFAULT_DEFINITIONS_DIR}).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides CREDIT_WORKFLOW_DATABASE_URL).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = load_settings()
    configure_logging(level=settings.log_level)

    try:
        definitions = load_default_definitions(args.directory)
    except DefinitionConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    init_engine_from_url(args.db_url or settings.database_url, echo=settings.sql_echo)
    create_tables()

    with session_scope() as session:
        repository = SqlWorkflowDefinitionRepository(session)
        for definition in definitions:
            current = repository.get_active_by_case_type(definition.case_type)
            if (
                current is not None
                and current.name == definition.name
                and current.version >= definition.version
            ):
                print(f"Skipping {definition.name!r}: v{current.version} already active")
                continue
            print(
                f"Storing {definition.name!r} ({definition.case_type.value} "
                f"v{definition.version}): {len(definition.stages)} stages, "
                f"{len(definition.transitions)} transitions"
            )
            repository.add(definition)
    return 0


if __name__ == "__main__":
    sys.exit(main())
