"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "waypoint",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

_sweep_minutes = settings.escalation_sweep_interval_minutes

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.escalation.*": {"queue": "escalation"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        # ── Staleness lights ────────────────────────────────────────
        "escalation-sweep": {
            "task": "workers.escalation.sweep_in_transit_orders",
            "schedule": crontab(minute=f"*/{_sweep_minutes}"),
            # A tick still queued when the next one fires is dropped, not stacked.
            "options": {"queue": "escalation", "expires": _sweep_minutes * 60},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"], related_name="escalation")
