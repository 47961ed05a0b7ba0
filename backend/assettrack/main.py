"""
AssetTrack FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assettrack.api.routes.history import router as history_router
from assettrack.api.routes.imports import router as imports_router
from assettrack.config import settings
from assettrack.db import close_db, get_db

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("Starting AssetTrack API...")
    try:
        await get_db()
    except Exception as e:
        logger.warning(f"SQLite initialization failed: {e}")

    yield

    logger.info("Shutting down AssetTrack API...")
    await close_db()


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports_router)
app.include_router(history_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "AssetTrack API",
        "version": settings.api_version,
        "endpoints": {
            "bulk_import": "/assets/bulk-import",
            "validate_import": "/assets/validate-import",
            "orphaned": "/assets/orphaned",
            "history": "/history/logs",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
