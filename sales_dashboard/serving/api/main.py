"""
FastAPI Application Factory

Creates and configures the dashboard API application.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import make_asgi_app

from sales_dashboard.config import get_settings
from .middleware import RequestLoggingMiddleware
from .routes import compute_router, health_router, performance_router


def create_api_app(lifespan: Optional[object] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan: Optional lifespan context manager factory

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Sales Performance Dashboard API",
        description="Customer performance against agreement targets",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(performance_router, prefix="/api/v1/performance", tags=["Performance"])
    app.include_router(compute_router, prefix="/api/v1/cache", tags=["Compute"])

    app.mount("/metrics", make_asgi_app())

    return app
