"""
Compute Endpoint

Compute-now endpoint used as the remote compute collaborator: fetches the
configured sources, aggregates them and returns the result. Publishing to
the caches is left to the caller.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import structlog

from sales_dashboard.config import DashboardConfig
from sales_dashboard.ingestion.sources import SourceLoader, SourceUnavailableError
from sales_dashboard.serving.api.dependencies import get_dashboard_config, get_source_loader
from sales_dashboard.serving.strategies import RecomputeError, compute_from_sources

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/update")
async def update_cache(
    loader: SourceLoader = Depends(get_source_loader),
    config: DashboardConfig = Depends(get_dashboard_config),
) -> JSONResponse:
    """
    Recompute from the configured sources.

    Returns ``{"success": true, "data": <CachedResult>, "message": ...}`` or
    ``{"success": false, "error": ...}`` with status 500.
    """
    try:
        result, loaded = await compute_from_sources(loader, config)
    except (SourceUnavailableError, RecomputeError) as e:
        logger.error("Cache update failed", error=str(e))
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return JSONResponse(
        content={
            "success": True,
            "data": result.to_payload(),
            "message": f"Cache updated with {len(result.performances)} customers",
            "skippedSources": [failure.location for failure in loaded.failures],
        }
    )
