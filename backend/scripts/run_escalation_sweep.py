#!/usr/bin/env python3
"""Run escalation sweep ticks outside Celery.

Useful for cron-only deployments and for checking a database by hand.

Examples:
  python backend/scripts/run_escalation_sweep.py
  python backend/scripts/run_escalation_sweep.py --database-url sqlite+aiosqlite:///./waypoint.db --pretty
  python backend/scripts/run_escalation_sweep.py --show-changes
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import get_settings
from db.session import build_worker_session
from lifecycle.staleness import StalenessThresholds
from lifecycle.sweeper import EscalationSweeper


async def _run_once(
    *,
    database_url: str,
    thresholds: StalenessThresholds,
    timeout_seconds: float,
    show_changes: bool,
) -> dict[str, Any]:
    engine, session_factory = build_worker_session(database_url)
    try:
        sweeper = EscalationSweeper(
            session_factory,
            thresholds=thresholds,
            timeout_seconds=timeout_seconds,
        )
        result = await sweeper.tick()
    finally:
        await engine.dispose()

    summary = result.summary()
    if show_changes:
        summary["changes"] = [
            {
                "order_id": str(change.order_id),
                "order_number": change.order_number,
                "old": change.old.value if change.old else None,
                "new": change.new.value,
                "elapsed_minutes": change.elapsed_minutes,
            }
            for change in result.changes
        ]
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one escalation sweep tick")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--yellow-minutes", type=int, default=None, help="Override STALENESS_YELLOW_MINUTES")
    parser.add_argument("--red-minutes", type=int, default=None, help="Override STALENESS_RED_MINUTES")
    parser.add_argument("--timeout-seconds", type=float, default=None, help="Override the per-tick timeout")
    parser.add_argument("--show-changes", action="store_true", help="Include each severity change in the output")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args()

    try:
        settings = get_settings()
        thresholds = StalenessThresholds(
            yellow_after_minutes=args.yellow_minutes or settings.staleness_yellow_minutes,
            red_after_minutes=args.red_minutes or settings.staleness_red_minutes,
        )
        summary = asyncio.run(
            _run_once(
                database_url=args.database_url or settings.database_url,
                thresholds=thresholds,
                timeout_seconds=args.timeout_seconds or settings.escalation_sweep_timeout_seconds,
                show_changes=bool(args.show_changes),
            )
        )
    except Exception as exc:  # noqa: BLE001
        summary = {"status": "failed", "error": str(exc)}

    if args.pretty:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print(json.dumps(summary))

    return 0 if summary["status"] in {"success", "skipped"} else 1


if __name__ == "__main__":
    raise SystemExit(main())
