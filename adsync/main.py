"""ADSYNC - FastAPI Application Entry Point.

Google Ads account and metrics synchronization service.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adsync.database import init_db, test_connection
from adsync.scheduler.jobs import start_scheduler, stop_scheduler
from adsync.api.ingest_routes import router as ingest_router
from adsync.api.sink_routes import router as sink_router
from adsync.api.google_routes import router as google_router
from adsync.core.logging import get_logger

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("ADSYNC starting up...")
    logger.info(f"Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    if test_connection():
        init_db()
    else:
        logger.error("Database NOT connected, endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("ADSYNC shut down")


app = FastAPI(
    title="ADSYNC",
    description="Synchronize Google Ads account metadata and daily campaign metrics into the internal store.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(ingest_router)
app.include_router(sink_router)
app.include_router(google_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "adsync",
        "version": "1.0.0",
    }
