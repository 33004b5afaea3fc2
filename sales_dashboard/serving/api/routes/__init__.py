"""
API Routes Module
"""
from .compute import router as compute_router
from .health import router as health_router
from .performance import router as performance_router

__all__ = [
    "compute_router",
    "health_router",
    "performance_router",
]
