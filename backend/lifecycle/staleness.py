"""
Staleness Classifier — heartbeat age to traffic-light severity.

Bands (lower bound inclusive):
  green   elapsed < yellow_after
  yellow  yellow_after <= elapsed < red_after
  red     elapsed >= red_after

Defaults are 40 and 60 minutes, overridable through settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lifecycle.statuses import SeverityLevel


@dataclass(frozen=True)
class StalenessThresholds:
    yellow_after_minutes: int = 40
    red_after_minutes: int = 60

    def __post_init__(self):
        if not 0 < self.yellow_after_minutes < self.red_after_minutes:
            raise ValueError(
                f"Invalid staleness thresholds: yellow={self.yellow_after_minutes} red={self.red_after_minutes}"
            )

    @classmethod
    def from_settings(cls, settings) -> "StalenessThresholds":
        return cls(
            yellow_after_minutes=settings.staleness_yellow_minutes,
            red_after_minutes=settings.staleness_red_minutes,
        )


DEFAULT_THRESHOLDS = StalenessThresholds()


def elapsed_minutes(now: datetime, last_update_at: datetime) -> int:
    """Whole minutes between the heartbeat and now, truncated. Future heartbeats count as 0."""
    seconds = (now - last_update_at).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def classify(elapsed: int, thresholds: StalenessThresholds = DEFAULT_THRESHOLDS) -> SeverityLevel:
    """Classify an in-transit order's staleness by minutes since its last heartbeat."""
    if elapsed < thresholds.yellow_after_minutes:
        return SeverityLevel.GREEN
    elif elapsed < thresholds.red_after_minutes:
        return SeverityLevel.YELLOW
    return SeverityLevel.RED
