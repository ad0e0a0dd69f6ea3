"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers the import router.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from payroll_import import __version__
from payroll_import.api.routers import imports
from payroll_import.core.config import settings
from payroll_import.core.logging_config import configure_logging

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the import target tables on startup."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    from payroll_import.db.models import create_tables
    from payroll_import.db.session import get_engine

    try:
        create_tables(get_engine())
        logger.info("Import tables ready")
    except Exception as e:
        logger.error("Failed to initialize database tables: %s", e)
        raise  # Re-raise to prevent app from starting with broken database

    yield


app = FastAPI(
    title="Payroll Import API",
    version=__version__,
    description="Bulk CSV/Excel import of employees, employee IDs, pay codes and time clock punches",
    lifespan=lifespan,
)

# Allow origins from environment variable or defaults for development
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router)


@app.get("/")
async def root():
    return {
        "message": "Payroll Import API",
        "version": __version__,
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "payroll-import",
    }
