"""
FastAPI application initialization
"""

import asyncio
from fastapi import FastAPI
from api.routes import health, sync
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import async_session_maker
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from pipeline.extractors.courtlistener import CourtListenerClient
from pipeline.scheduler import SyncScheduler
from pipeline.worker import QueueWorker
import logging

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="CourtSync API",
    description="Trigger and monitor CourtListener sync runs and the sync job queue",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(sync.router)

scheduler = SyncScheduler()


@app.on_event("startup")
async def startup_event():
    """Start the recurring scheduler and queue worker when enabled"""
    logger.info("Starting CourtSync API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    app.state.worker = None
    app.state.worker_task = None
    app.state.client = None

    if not settings.SYNC_SCHEDULER_ENABLED:
        logger.info("Sync scheduler disabled (SYNC_SCHEDULER_ENABLED=false)")
        return

    try:
        client = CourtListenerClient()
    except ConfigurationError as e:
        logger.error(f"Sync scheduler not started: {e.message}")
        return

    scheduler.start()
    app.state.client = client
    app.state.worker = QueueWorker(async_session_maker, client)
    app.state.worker_task = asyncio.create_task(app.state.worker.run())


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down CourtSync API")
    worker = getattr(app.state, "worker", None)
    if worker is None:
        return

    worker.stop()
    await app.state.worker_task
    scheduler.stop()
    await app.state.client.aclose()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "CourtSync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "sync": ["/sync/courts", "/sync/judges", "/sync/decisions"],
            "queue": "/sync/queue",
            "queue_stats": "/sync/queue/stats",
            "status": "/sync/status"
        }
    }
