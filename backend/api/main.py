"""
Waypoint API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from core.config import get_settings
from lifecycle.errors import LifecycleError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events. Owns the in-process escalation sweeper when enabled."""
    logger.info("Waypoint API starting up", version=settings.app_version)
    sweeper = None
    if settings.escalation_sweep_in_process:
        from db.session import AsyncSessionLocal
        from lifecycle.sweeper import EscalationSweeper

        sweeper = EscalationSweeper.from_settings(settings, AsyncSessionLocal)
        sweeper.start()
    app.state.escalation_sweeper = sweeper
    yield
    if sweeper is not None:
        await sweeper.stop()
    logger.info("Waypoint API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Shipment tracking with order lifecycle and staleness escalation",
    lifespan=lifespan,
)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    """Each lifecycle error keeps its own status code and machine-readable code."""
    logger.info(
        "api.lifecycle_error",
        path=request.url.path,
        error=exc.code,
        detail=str(exc),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error": exc.code},
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import orders

app.include_router(orders.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    sweeper = getattr(app.state, "escalation_sweeper", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "escalation_sweeper": "running" if sweeper is not None and sweeper.running else "external",
    }
