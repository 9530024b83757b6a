"""
Escalation Sweeper — periodic traffic-light recoloring of in-transit orders.

Per tick:
  1. Load every non-deleted IN_TRANSIT order
  2. Classify minutes since its heartbeat (green / yellow / red)
  3. Skip orders whose stored light already matches
  4. Write the changed lights in one batch, leaving the heartbeat untouched
  5. Log one line per changed order

A tick is a pure function of (now, stored heartbeat), so a failed tick is
logged and dropped; the next one recomputes everything from scratch.

Two ways to drive it:
  - Celery beat → workers.escalation.sweep_in_transit_orders (production)
  - start()/stop() → asyncio loop inside the API process (single-node / dev),
    ticking on a fixed grid measured from start() rather than after each tick
"""

from __future__ import annotations

import asyncio
import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import utcnow
from lifecycle.errors import SweepFailure
from lifecycle.gateway import OrderGateway, SqlOrderGateway
from lifecycle.staleness import DEFAULT_THRESHOLDS, StalenessThresholds, classify, elapsed_minutes
from lifecycle.statuses import SeverityLevel

logger = structlog.get_logger()


@dataclass(frozen=True)
class SeverityChange:
    order_id: uuid.UUID
    order_number: str | None
    old: SeverityLevel | None
    new: SeverityLevel
    elapsed_minutes: int


@dataclass
class SweepResult:
    status: str  # success, failed, skipped
    scanned: int = 0
    changed: int = 0
    changes: list[SeverityChange] = field(default_factory=list)
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def complete(self) -> "SweepResult":
        self.completed_at = datetime.now(timezone.utc)
        return self

    def summary(self) -> dict:
        return {
            "status": self.status,
            "scanned": self.scanned,
            "changed": self.changed,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


def compute_changes(orders, now: datetime, thresholds: StalenessThresholds) -> list[SeverityChange]:
    """Severity changes for the given in-transit orders. Unchanged orders are omitted."""
    changes = []
    for order in orders:
        elapsed = elapsed_minutes(now, order.last_update_at)
        new = classify(elapsed, thresholds)
        old = SeverityLevel(order.severity_level) if order.severity_level else None
        if old == new:
            continue
        changes.append(
            SeverityChange(
                order_id=order.order_id,
                order_number=order.order_number,
                old=old,
                new=new,
                elapsed_minutes=elapsed,
            )
        )
    return changes


def next_tick_at(started: float, interval: float, now: float) -> float:
    """First slot of the fixed ``started + k * interval`` grid strictly after ``now``. Overrun slots are skipped."""
    elapsed_slots = max(math.floor((now - started) / interval), -1)
    return started + (elapsed_slots + 1) * interval


class EscalationSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        thresholds: StalenessThresholds = DEFAULT_THRESHOLDS,
        interval_seconds: float = 60.0,
        timeout_seconds: float | None = 30.0,
        clock: Callable[[], datetime] = utcnow,
        gateway_factory: Callable[[AsyncSession], OrderGateway] = SqlOrderGateway,
    ):
        self.session_factory = session_factory
        self.thresholds = thresholds
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self.gateway_factory = gateway_factory
        self.last_result: SweepResult | None = None

        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @classmethod
    def from_settings(cls, settings, session_factory, **kwargs) -> "EscalationSweeper":
        return cls(
            session_factory,
            thresholds=StalenessThresholds.from_settings(settings),
            interval_seconds=settings.escalation_sweep_interval_minutes * 60,
            timeout_seconds=settings.escalation_sweep_timeout_seconds,
            **kwargs,
        )

    # ── One tick ────────────────────────────────────────────────────────

    async def sweep(self) -> SweepResult:
        """Run one sweep. Raises SweepFailure when storage fails."""
        result = SweepResult(status="success")
        try:
            async with self.session_factory() as db:
                gateway = self.gateway_factory(db)
                orders = await gateway.find_active_in_transit_orders()
                changes = compute_changes(orders, self.clock(), self.thresholds)
                result.scanned = len(orders)

                if changes:
                    applied = set(
                        await gateway.apply_severity_changes([(change.order_id, change.new) for change in changes])
                    )
                    await db.commit()
                    # Rows that left in-transit between the read and the write are not reported.
                    result.changes = [change for change in changes if change.order_id in applied]
                    result.changed = len(result.changes)
        except Exception as exc:
            raise SweepFailure(str(exc)) from exc

        for change in result.changes:
            logger.info(
                "escalation.severity_changed",
                order_id=str(change.order_id),
                order_number=change.order_number,
                old=change.old.value if change.old else "none",
                new=change.new.value,
                elapsed_minutes=change.elapsed_minutes,
            )
        return result.complete()

    async def tick(self) -> SweepResult:
        """Run one sweep, serialized and bounded. Never raises."""
        if self._lock.locked():
            logger.info("escalation.tick_skipped", reason="previous_tick_running")
            return SweepResult(status="skipped").complete()

        async with self._lock:
            try:
                if self.timeout_seconds:
                    result = await asyncio.wait_for(self.sweep(), timeout=self.timeout_seconds)
                else:
                    result = await self.sweep()
            except asyncio.TimeoutError:
                result = SweepResult(status="failed", error=f"timed out after {self.timeout_seconds}s").complete()
                logger.error("escalation.sweep_failed", error=result.error)
            except SweepFailure as exc:
                result = SweepResult(status="failed", error=str(exc)).complete()
                logger.error("escalation.sweep_failed", error=str(exc), exc_info=True)
            else:
                if result.changed:
                    logger.info("escalation.sweep_completed", **result.summary())

        self.last_result = result
        return result

    # ── In-process schedule ─────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="escalation-sweeper")
        logger.info("escalation.sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self.running:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("escalation.sweeper_stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        while not self._stop_event.is_set():
            await self.tick()
            delay = next_tick_at(started, self.interval_seconds, loop.time()) - loop.time()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=max(delay, 0))
            except asyncio.TimeoutError:
                continue
