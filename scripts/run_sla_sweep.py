#!/usr/bin/env python3
"""
Run one SLA sweep: mark every open workflow instance past its stage deadline
as SLA-breached.

Meant for cron, a systemd timer, or any poll loop.  Each run is idempotent,
and overlapping runs are safe.

Usage:
    python3 scripts/run_sla_sweep.py [options]

Examples:
    # Sweep the database named by CREDIT_WORKFLOW_DATABASE_URL
    python3 scripts/run_sla_sweep.py

    # Sweep an explicit database with a settings file
    python3 scripts/run_sla_sweep.py --settings settings.yaml --db-url postgresql://...

Exit status is 0 on success and 1 if the database could not be reached.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from credit_workflow.db.engine import init_engine_from_url, session_scope
from credit_workflow.domain.clock import SystemClock
from credit_workflow.exceptions import StoreError
from credit_workflow.logging_config import configure_logging, get_logger
from credit_workflow.services.factory import build_workflow_service
from credit_workflow_config.settings import load_settings

logger = get_logger("scripts.sla_sweep")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mark overdue workflow instances as SLA-breached.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Optional YAML settings file (environment overrides still apply).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides settings and CREDIT_WORKFLOW_DATABASE_URL).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = load_settings(args.settings)
    configure_logging(level=settings.log_level)

    db_url = args.db_url or settings.database_url
    init_engine_from_url(db_url, echo=settings.sql_echo)

    try:
        with session_scope() as session:
            service = build_workflow_service(
                session,
                clock=SystemClock(),
                superuser_role=settings.superuser_role,
            )
            marked = service.check_and_mark_sla_breaches()
    except StoreError as e:
        logger.error("sla_sweep_failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(f"Marked {marked} instance(s) as SLA-breached.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
