#!/usr/bin/env python3
"""Validate runtime configuration for pre-production/production deploys.

Examples:
  python backend/scripts/validate_runtime_config.py
  python backend/scripts/validate_runtime_config.py --require-external-sweep --pretty
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import DEFAULT_JWT_SECRET, Settings


def _is_local_env(raw_env: str) -> bool:
    env = raw_env.strip().lower()
    return env in {"", "local", "dev", "development", "test"}


def _validate_settings(*, require_external_sweep: bool) -> tuple[list[str], dict[str, Any]]:
    # Settings() directly: get_settings() raises on the first violation, this reports all of them.
    settings = Settings()
    env = settings.app_env.strip().lower()
    local_env = _is_local_env(env)
    failures: list[str] = []

    if settings.escalation_sweep_interval_minutes < 1:
        failures.append("ESCALATION_SWEEP_INTERVAL_MINUTES must be at least 1")
    elif settings.escalation_sweep_interval_minutes > 60 or 60 % settings.escalation_sweep_interval_minutes:
        failures.append("ESCALATION_SWEEP_INTERVAL_MINUTES must divide 60 so the beat crontab ticks evenly")
    if not 0 < settings.staleness_yellow_minutes < settings.staleness_red_minutes:
        failures.append("STALENESS_YELLOW_MINUTES and STALENESS_RED_MINUTES must satisfy 0 < yellow < red")
    if settings.escalation_sweep_timeout_seconds <= 0:
        failures.append("ESCALATION_SWEEP_TIMEOUT_SECONDS must be positive")

    if not local_env:
        if settings.jwt_secret == DEFAULT_JWT_SECRET:
            failures.append("JWT_SECRET must not use the default value outside local/dev/test")
        if settings.debug:
            failures.append("DEBUG=true is not allowed outside local/dev/test")
        if require_external_sweep and settings.escalation_sweep_in_process:
            failures.append(
                "ESCALATION_SWEEP_IN_PROCESS must be false when Celery beat drives the sweep "
                "(--require-external-sweep)"
            )

    summary = {
        "status": "success" if not failures else "failed",
        "app_env": settings.app_env,
        "local_env": local_env,
        "require_external_sweep": bool(require_external_sweep),
        "staleness_yellow_minutes": settings.staleness_yellow_minutes,
        "staleness_red_minutes": settings.staleness_red_minutes,
        "escalation_sweep_interval_minutes": settings.escalation_sweep_interval_minutes,
        "failures": failures,
    }
    return failures, summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate deployment runtime config")
    parser.add_argument(
        "--require-external-sweep",
        action="store_true",
        help="Fail if the API process is also configured to run the escalation sweep",
    )
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args()

    try:
        failures, summary = _validate_settings(require_external_sweep=bool(args.require_external_sweep))
    except Exception as exc:  # noqa: BLE001
        summary = {
            "status": "failed",
            "error": str(exc),
            "require_external_sweep": bool(args.require_external_sweep),
        }
        failures = [str(exc)]

    if args.pretty:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print(json.dumps(summary))

    return 0 if not failures else 1


if __name__ == "__main__":
    raise SystemExit(main())
