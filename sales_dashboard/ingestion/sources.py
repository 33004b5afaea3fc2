"""
Raw Source Fetching

Loads the agreement registry and the sales extracts from local paths or
HTTP(S) URLs.

Features:
- Per-source timeouts
- Bounded parallel fetching of sales extracts
- Skip-and-continue: an unreachable or unreadable sales extract is
  collected as a failure and the remaining extracts proceed
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

import httpx
import structlog
from prometheus_client import Counter

from sales_dashboard.config import DashboardConfig
from sales_dashboard.transformation.models import Agreement, SaleLine
from sales_dashboard.transformation.normalizers import SourceFormat, SourceKind, normalize_table
from .readers import RawTable, detect_format, read_table

logger = structlog.get_logger(__name__)


SOURCE_FAILURES = Counter(
    "dashboard_source_failures_total",
    "Raw sources that could not be fetched or parsed",
    ["kind"],
)


class SourceUnavailableError(RuntimeError):
    """A raw source could not be fetched"""


@dataclass
class SourceFailure:
    """A sales source excluded from the union"""
    location: str
    error: str


@dataclass
class LoadedSources:
    """Normalized records from one load of all configured sources"""
    agreements: List[Agreement] = field(default_factory=list)
    sales: List[SaleLine] = field(default_factory=list)
    failures: List[SourceFailure] = field(default_factory=list)
    sales_sources_loaded: int = 0


def is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def sales_location(folder: str, file_name: str) -> str:
    """Join a sales folder (path or base URL) and a file name"""
    if is_url(folder):
        return f"{folder.rstrip('/')}/{file_name.lstrip('/')}"
    return str(Path(folder) / file_name)


def _format_for(location: str, default: SourceFormat) -> SourceFormat:
    try:
        return detect_format(location)
    except ValueError:
        return default


class SourceFetcher:
    """
    Fetches raw source bytes with a per-source timeout.

    Example:
        fetcher = SourceFetcher(timeout=10)
        data = await fetcher.fetch("https://example.com/data/customer_master.csv")
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._client = client

    async def _fetch_url(self, url: str) -> bytes:
        if self._client is not None:
            response = await self._client.get(url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.content

    async def _fetch_path(self, location: str) -> bytes:
        path = Path(location)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return await asyncio.to_thread(path.read_bytes)

    async def fetch(self, location: str) -> bytes:
        """
        Fetch raw bytes from a path or URL.

        Raises:
            SourceUnavailableError: On timeout, missing file or HTTP error
        """
        fetch = self._fetch_url(location) if is_url(location) else self._fetch_path(location)
        try:
            return await asyncio.wait_for(fetch, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SourceUnavailableError(f"Timed out fetching {location}") from e
        except (OSError, httpx.HTTPError) as e:
            raise SourceUnavailableError(f"Could not fetch {location}: {e}") from e


class SourceLoader:
    """
    Loads and normalizes the agreement registry and all sales extracts.

    Example:
        loader = SourceLoader(SourceFetcher(timeout=30), max_parallel=4)
        sources = await loader.load(config)
    """

    def __init__(self, fetcher: SourceFetcher, max_parallel: int = 4):
        self.fetcher = fetcher
        self.max_parallel = max(1, max_parallel)

    async def load_agreements(self, location: str) -> List[Agreement]:
        """
        Fetch and normalize the agreement registry.

        Raises:
            SourceUnavailableError: If the registry cannot be fetched or parsed
        """
        try:
            data = await self.fetcher.fetch(location)
            table = read_table(data, _format_for(location, SourceFormat.CSV), name=location)
        except SourceUnavailableError:
            SOURCE_FAILURES.labels(kind=SourceKind.AGREEMENTS.value).inc()
            raise
        except Exception as e:
            SOURCE_FAILURES.labels(kind=SourceKind.AGREEMENTS.value).inc()
            raise SourceUnavailableError(f"Could not parse agreement source {location}: {e}") from e
        return normalize_table(table, SourceKind.AGREEMENTS)

    async def _load_sales_source(
        self,
        location: str,
        semaphore: asyncio.Semaphore,
    ) -> Union[RawTable, SourceFailure]:
        async with semaphore:
            try:
                data = await self.fetcher.fetch(location)
                return read_table(data, _format_for(location, SourceFormat.SPREADSHEET), name=location)
            except Exception as e:
                SOURCE_FAILURES.labels(kind=SourceKind.SALES.value).inc()
                logger.warning("Could not load sales source", source=location, error=str(e))
                return SourceFailure(location=location, error=str(e))

    async def load_sales(self, locations: Sequence[str]) -> LoadedSources:
        """Fetch all sales extracts concurrently and union them in the given order"""
        semaphore = asyncio.Semaphore(self.max_parallel)
        outcomes = await asyncio.gather(
            *(self._load_sales_source(location, semaphore) for location in locations)
        )

        loaded = LoadedSources()
        for outcome in outcomes:
            if isinstance(outcome, SourceFailure):
                loaded.failures.append(outcome)
                continue
            loaded.sales.extend(normalize_table(outcome, SourceKind.SALES))
            loaded.sales_sources_loaded += 1
        return loaded

    async def load(self, config: DashboardConfig) -> LoadedSources:
        """
        Load every configured source.

        Raises:
            SourceUnavailableError: If the agreement registry is unavailable
        """
        agreements = await self.load_agreements(config.agreement_source_location)

        locations = [
            sales_location(config.sales_source_folder, file_name)
            for file_name in config.sales_source_files
        ]
        loaded = await self.load_sales(locations)
        loaded.agreements = agreements

        logger.info(
            "Sources loaded",
            agreements=len(agreements),
            sales_lines=len(loaded.sales),
            sales_sources=loaded.sales_sources_loaded,
            failed_sources=len(loaded.failures),
        )
        return loaded
