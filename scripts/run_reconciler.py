#!/usr/bin/env python3
"""
Run the appraisal reconciler: activate and complete cycles on their dates,
flag overdue participants and execute due deferred actions.

Reads the database URL from --db-url or APPRAISAL_DATABASE_URL and the
engine settings from appraisal_config (default set unless --settings).

Usage:
    python3 scripts/run_reconciler.py --once
    python3 scripts/run_reconciler.py                 # loop every tick interval

Examples:
    # Single pass against a local database, creating tables first
    APPRAISAL_DATABASE_URL=sqlite:///appraisal.db \\
        python3 scripts/run_reconciler.py --once --create-tables

    # Loop with custom settings
    python3 scripts/run_reconciler.py --settings my_settings.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the appraisal reconciler once or on a polling loop.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db-url",
        default=os.environ.get("APPRAISAL_DATABASE_URL"),
        help="Database URL (default: $APPRAISAL_DATABASE_URL).",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Engine settings YAML (default: appraisal_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation and exit.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    if not args.db_url:
        print("No database URL: pass --db-url or set APPRAISAL_DATABASE_URL", file=sys.stderr)
        return 2

    from appraisal_batch.services import Reconciler, ReconcilerScheduler
    from appraisal_config import get_engine_settings
    from appraisal_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from appraisal_kernel.logging_config import configure_logging

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    settings = get_engine_settings(args.settings)

    init_engine_from_url(args.db_url)
    if args.create_tables:
        create_tables()

    def reconciler_factory(session):
        return Reconciler(
            session,
            hr_audience_id=settings.notifications.hr_audience,
            run_overdue_scan=settings.reconciler.run_overdue_scan,
            run_deferred_actions=settings.reconciler.run_deferred_actions,
        )

    scheduler = ReconcilerScheduler(
        get_session_factory(),
        reconciler_factory,
        tick_interval_seconds=settings.reconciler.tick_interval_seconds,
    )

    if args.once:
        summary = scheduler.tick()
        if summary is None:
            print("Reconciler run failed; see log output", file=sys.stderr)
            return 1
        print(json.dumps({
            "run_id": str(summary.run_id),
            "run_date": summary.run_date.isoformat(),
            "status": summary.status.value,
            "activated": summary.activated,
            "completed": summary.completed,
            "overdue_participants": summary.overdue_participants,
            "actions_executed": summary.actions_executed,
            "errors": list(summary.errors),
        }, indent=2))
        return 0 if not summary.errors else 1

    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
