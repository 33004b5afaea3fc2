"""
Result Cache Stores

Two tiers hold the current ``CachedResult``:
- LocalCacheStore: single-client JSON snapshot on local disk, best effort
- SharedCacheStore: Redis key shared by every client of the deployment

The shared store is last-writer-wins: a write from any client replaces the
stored value unconditionally. There is no versioning or conflict detection.

Reads never raise; a failed or corrupt read is reported as absent. Writes
return False on failure.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union

import structlog
from pydantic import ValidationError

from sales_dashboard.transformation.models import CachedResult
from .cache import CacheManager

logger = structlog.get_logger(__name__)


class CacheStore(Protocol):
    """Capability shared by every result cache tier"""

    name: str

    async def read(self) -> Optional[CachedResult]:
        ...

    async def write(self, result: CachedResult) -> bool:
        ...


class LocalCacheStore:
    """
    JSON snapshot of the last result on local disk.

    Example:
        store = LocalCacheStore("./data/cache/performance.json")
        await store.write(result)
        result = await store.read()
    """

    name = "local"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_file(self) -> Optional[CachedResult]:
        if not self.path.exists():
            return None
        return CachedResult.model_validate_json(self.path.read_text(encoding="utf-8"))

    def _write_file(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so readers never see a partial snapshot
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(payload)
            os.replace(tmp_name, self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def read(self) -> Optional[CachedResult]:
        try:
            return await asyncio.to_thread(self._read_file)
        except (OSError, ValidationError, ValueError) as e:
            logger.warning("Local cache unreadable", path=str(self.path), error=str(e))
            return None

    async def write(self, result: CachedResult) -> bool:
        payload = json.dumps(result.to_payload())
        try:
            await asyncio.to_thread(self._write_file, payload)
        except OSError as e:
            logger.error("Local cache write failed", path=str(self.path), error=str(e))
            return False
        logger.debug("Local cache written", path=str(self.path), customers=len(result.performances))
        return True


class SharedCacheStore:
    """
    Canonical current result under one fixed Redis key.

    Example:
        store = SharedCacheStore(CacheManager("performance"), key="current")
    """

    name = "shared"

    def __init__(self, cache: CacheManager, key: str = "current"):
        self.cache = cache
        self.key = key

    async def read(self) -> Optional[CachedResult]:
        try:
            payload = await self.cache.get(self.key)
        except Exception as e:
            logger.warning("Shared cache read failed", key=self.key, error=str(e))
            return None

        if payload is None:
            return None

        try:
            return CachedResult.model_validate(payload)
        except ValidationError as e:
            logger.warning("Shared cache entry invalid", key=self.key, error=str(e))
            return None

    async def write(self, result: CachedResult) -> bool:
        try:
            written = await self.cache.set(self.key, result.to_payload())
        except Exception as e:
            logger.error("Shared cache write failed", key=self.key, error=str(e))
            return False
        if not written:
            logger.error("Shared cache write rejected", key=self.key)
        return written
