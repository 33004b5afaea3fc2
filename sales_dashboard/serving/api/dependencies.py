"""
FastAPI Dependencies

Accessors for objects created in the application lifespan.
"""

from fastapi import HTTPException, Request

from sales_dashboard.config import DashboardConfig
from sales_dashboard.ingestion.sources import SourceLoader
from sales_dashboard.serving.refresh import RefreshCoordinator


def get_coordinator(request: Request) -> RefreshCoordinator:
    """The application's refresh coordinator"""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Refresh coordinator not initialized")
    return coordinator


def get_source_loader(request: Request) -> SourceLoader:
    """Source loader used by the compute endpoint"""
    return request.app.state.source_loader


def get_dashboard_config(request: Request) -> DashboardConfig:
    """Source layout the compute endpoint reads"""
    return request.app.state.dashboard_config
