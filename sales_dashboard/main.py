"""
FastAPI Production Application

Main entry point for the Sales Performance Dashboard API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from sales_dashboard.config import get_settings, load_dashboard_config
from sales_dashboard.config.logging import configure_logging
from sales_dashboard.ingestion.sources import SourceFetcher, SourceLoader
from sales_dashboard.serving.api.main import create_api_app
from sales_dashboard.serving.cache import close_redis, init_redis
from sales_dashboard.serving.refresh import create_coordinator

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    settings = get_settings()
    config = load_dashboard_config(settings)

    logger.info("Starting Sales Performance Dashboard API", environment=settings.app_env)

    # Without Redis the shared tier reads as empty and writes fail
    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis init failed, shared cache unavailable", error=str(e))

    app.state.dashboard_config = config
    app.state.source_loader = SourceLoader(
        SourceFetcher(timeout=settings.sources.fetch_timeout_seconds),
        max_parallel=settings.sources.max_parallel_fetches,
    )

    coordinator = create_coordinator(settings, config)
    app.state.coordinator = coordinator

    await coordinator.startup()
    if settings.refresh.auto_refresh_enabled:
        coordinator.start_auto_refresh()

    yield

    logger.info("Shutting down...")
    await coordinator.stop()
    await close_redis()


app = create_api_app(lifespan=lifespan)


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    settings = get_settings()
    return {
        "name": "Sales Performance Dashboard API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
