"""
regofn - Rego policy evaluation for composition pipelines

FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from regofn import __version__
from regofn.app.api import function_router
from regofn.app.dependencies import get_engine, get_function, get_settings
from regofn.function import get_metrics

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the function (and its engine) at startup so a missing OPA
    binary fails the process instead of the first request.
    """
    logger.info(f"Starting {settings.service_name} ({settings.environment})...")
    try:
        get_function()
        logger.info("Rule engine ready")
    except Exception as e:
        logger.error(f"Failed to initialize rule engine: {e}", exc_info=True)
        raise

    yield

    logger.info(f"Shutting down {settings.service_name}")


app = FastAPI(
    title="regofn",
    description="Evaluates Rego policies against observed and desired composite resource state",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

app.include_router(function_router, prefix="/api/v1")


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": __version__,
        "status": "running",
    }


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, Any]:
    """Health check endpoint reporting rule engine availability."""
    try:
        engine = get_engine()
        return {
            "status": "healthy",
            "engine": engine.name,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


@app.get("/metrics", tags=["health"])
async def metrics() -> dict[str, Any]:
    """Function run statistics."""
    return get_metrics().get_stats()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "regofn.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
