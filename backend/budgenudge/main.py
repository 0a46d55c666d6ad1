"""
FastAPI application entry point.
"""

from fastapi import FastAPI
from budgenudge.config import settings
from budgenudge.api.router import api_router
from budgenudge.logging_config import setup_logging


setup_logging()

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Scheduled SMS nudges about recurring bills and spending pace",
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/api/v1/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "app_name": settings.app_name
    }
