"""FastAPI application entry point."""

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from n8n_monitor.api.deps import get_n8n_client
from n8n_monitor.db import PersistenceError, close_database, init_database, monitor_store
from n8n_monitor.services.reconciler import InstanceReconciler
from n8n_monitor.services.scheduler import init_scheduler, shutdown_scheduler

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    db_path = os.getenv("DATABASE_PATH", "./data/monitor.db")
    await init_database(db_path)
    logger.info(f"Opened database at {db_path}")

    reconciler = InstanceReconciler(monitor_store, get_n8n_client())
    scheduler_enabled = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    await init_scheduler(monitor_store, reconciler, start=scheduler_enabled)
    if not scheduler_enabled:
        logger.info("Scheduler loop disabled (SCHEDULER_ENABLED=false)")

    yield

    # Shutdown
    await shutdown_scheduler()
    await close_database()


app = FastAPI(
    title="n8n Monitor",
    description="Mirrors workflow and webhook state of remote n8n instances",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Storage error"})


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Import and include routers after app is created to avoid circular imports
from n8n_monitor.api import instances, scheduler  # noqa: E402

app.include_router(instances.router, prefix="/api/v1")
app.include_router(scheduler.router, prefix="/api/v1")
