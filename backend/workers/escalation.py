"""
Escalation Worker — recolors in-transit orders by heartbeat age.

Schedule: crontab(minute="*/ESCALATION_SWEEP_INTERVAL_MINUTES") — every minute by default
Queue: escalation

No retries: a failed tick is logged and the next scheduled tick recomputes
every light from the stored heartbeats.
"""

import asyncio

import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.escalation.sweep_in_transit_orders",
    bind=True,
    acks_late=True,
    ignore_result=False,
)
def sweep_in_transit_orders(self):
    """Run one escalation sweep tick and return its summary."""
    run_id = self.request.id or "manual"

    async def _sweep():
        from core.config import get_settings
        from db.session import build_worker_session
        from lifecycle.sweeper import EscalationSweeper

        settings = get_settings()
        engine, session_factory = build_worker_session(settings.database_url)
        try:
            sweeper = EscalationSweeper.from_settings(settings, session_factory)
            return await sweeper.tick()
        finally:
            await engine.dispose()

    result = asyncio.run(_sweep())
    summary = {**result.summary(), "run_id": run_id}
    logger.info("escalation.worker_tick", **summary)
    return summary
