"""
FastAPI application entry point for the diagnostics API.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from pgjobs import __version__
from pgjobs.api.routes import health_router, stats_router
from pgjobs.config import get_settings
from pgjobs.db import close_db, get_engine, init_db
from pgjobs.observability.logging import setup_logging
from pgjobs.observability.metrics import setup_metrics
from pgjobs.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()
    instrument_sqlalchemy(get_engine().sync_engine)

    logger.info("Application started")

    yield

    await close_db()
    logger.info("Application shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="pgjobs diagnostics",
        description="Read-only view of a PostgreSQL-backed job queue",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.include_router(health_router)
    app.include_router(stats_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
