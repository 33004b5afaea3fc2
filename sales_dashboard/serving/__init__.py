"""
Serving Module
"""
from .cache import init_redis, close_redis, get_redis, cache_get, cache_set
from .refresh import (
    DisplaySnapshot,
    RefreshCoordinator,
    RefreshFailedError,
    RefreshInProgressError,
    RefreshState,
    RefreshTrigger,
    create_coordinator,
)
from .stores import LocalCacheStore, SharedCacheStore

__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "cache_get",
    "cache_set",
    "DisplaySnapshot",
    "RefreshCoordinator",
    "RefreshFailedError",
    "RefreshInProgressError",
    "RefreshState",
    "RefreshTrigger",
    "create_coordinator",
    "LocalCacheStore",
    "SharedCacheStore",
]
