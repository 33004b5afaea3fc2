"""
Recompute Strategies

Each strategy produces a fresh ``CachedResult`` or reports why it could
not. The refresh coordinator tries its strategies in order and stops at the
first success:

1. RemoteComputeStrategy - delegate to the remote compute endpoint
2. LocalComputeStrategy - fetch, normalize and aggregate in-process

UploadedSourcesStrategy runs the in-process pipeline over files supplied
directly by a user instead of the configured sources.
"""

import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

import structlog
from prometheus_client import Histogram

from sales_dashboard.config import DashboardConfig
from sales_dashboard.ingestion.readers import detect_format, read_table
from sales_dashboard.ingestion.sources import LoadedSources, SourceLoader, SourceUnavailableError
from sales_dashboard.transformation.aggregator import compute_result
from sales_dashboard.transformation.models import Agreement, CachedResult, SaleLine
from sales_dashboard.transformation.normalizers import SourceFormat, SourceKind, normalize_table
from .remote import RemoteComputeClient, RemoteComputeError

logger = structlog.get_logger(__name__)


RECOMPUTE_DURATION = Histogram(
    "dashboard_recompute_seconds",
    "Time spent by a recompute strategy",
    ["strategy"],
)


class RecomputeError(RuntimeError):
    """Raw sources did not yield a usable result"""


@dataclass(frozen=True)
class ComputeOutcome:
    """Success or failure of one strategy attempt"""
    strategy: str
    result: Optional[CachedResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @classmethod
    def success(cls, strategy: str, result: CachedResult) -> "ComputeOutcome":
        return cls(strategy=strategy, result=result)

    @classmethod
    def failure(cls, strategy: str, error: str) -> "ComputeOutcome":
        return cls(strategy=strategy, error=error)


class ComputeStrategy(Protocol):
    """One way of producing a fresh result"""

    name: str

    async def compute(self) -> ComputeOutcome:
        ...


def build_result(agreements: Sequence[Agreement], sales: Sequence[SaleLine]) -> CachedResult:
    """
    Aggregate normalized records into a result.

    Raises:
        RecomputeError: When there are no agreements or no sales lines
    """
    if not agreements:
        raise RecomputeError("No valid customer agreements found")
    if not sales:
        raise RecomputeError("No valid sales data found")
    return compute_result(agreements, sales)


async def compute_from_sources(loader: SourceLoader, config: DashboardConfig) -> Tuple[CachedResult, LoadedSources]:
    """
    Load the configured sources and aggregate them.

    Raises:
        SourceUnavailableError: When the agreement registry cannot be fetched
        RecomputeError: When the sources yield no agreements or no sales
    """
    loaded = await loader.load(config)
    if loaded.failures and loaded.sales_sources_loaded == 0:
        raise RecomputeError(f"No sales source reachable ({len(loaded.failures)} failed)")
    return build_result(loaded.agreements, loaded.sales), loaded


class RemoteComputeStrategy:
    """Delegates the recompute to a remote endpoint; absent URL means unavailable"""

    name = "remote"

    def __init__(self, client: Optional[RemoteComputeClient]):
        self.client = client

    async def compute(self) -> ComputeOutcome:
        if self.client is None:
            return ComputeOutcome.failure(self.name, "remote compute not configured")

        with RECOMPUTE_DURATION.labels(strategy=self.name).time():
            try:
                result = await self.client.compute()
            except RemoteComputeError as e:
                logger.info("Remote compute unavailable, falling back", error=str(e))
                return ComputeOutcome.failure(self.name, str(e))

        if result.is_empty:
            return ComputeOutcome.failure(self.name, "remote compute returned no customers")
        return ComputeOutcome.success(self.name, result)


class LocalComputeStrategy:
    """Fetches the configured sources and aggregates in-process"""

    name = "local"

    def __init__(self, loader: SourceLoader, config: DashboardConfig):
        self.loader = loader
        self.config = config

    async def compute(self) -> ComputeOutcome:
        started = time.perf_counter()
        with RECOMPUTE_DURATION.labels(strategy=self.name).time():
            try:
                result, loaded = await compute_from_sources(self.loader, self.config)
            except (SourceUnavailableError, RecomputeError) as e:
                logger.warning("Local recompute failed", error=str(e))
                return ComputeOutcome.failure(self.name, str(e))

        logger.info(
            "Local recompute succeeded",
            customers=result.summary.customer_count,
            sales_lines=len(loaded.sales),
            failed_sources=[failure.location for failure in loaded.failures] or None,
            duration_seconds=round(time.perf_counter() - started, 3),
        )
        return ComputeOutcome.success(self.name, result)


class UploadedSourcesStrategy:
    """
    Aggregates user-supplied files.

    Example:
        strategy = UploadedSourcesStrategy(
            agreements=("customer_master.csv", csv_bytes),
            sales=[("sales_q1.xlsx", xlsx_bytes)],
        )
    """

    name = "upload"

    def __init__(
        self,
        agreements: Tuple[str, bytes],
        sales: Sequence[Tuple[str, bytes]],
    ):
        self.agreements = agreements
        self.sales = list(sales)

    def _build(self) -> CachedResult:
        agreement_name, agreement_data = self.agreements
        agreements = normalize_table(
            read_table(agreement_data, SourceFormat.CSV, name=agreement_name),
            SourceKind.AGREEMENTS,
        )

        sales: List[SaleLine] = []
        for name, data in self.sales:
            table = read_table(data, detect_format(name), name=name)
            sales.extend(normalize_table(table, SourceKind.SALES))

        return build_result(agreements, sales)

    async def compute(self) -> ComputeOutcome:
        with RECOMPUTE_DURATION.labels(strategy=self.name).time():
            try:
                result = self._build()
            except RecomputeError as e:
                return ComputeOutcome.failure(self.name, str(e))
            except Exception as e:
                logger.warning("Uploaded files could not be processed", error=str(e))
                return ComputeOutcome.failure(
                    self.name,
                    f"Error processing files, check file formats: {e}",
                )
        return ComputeOutcome.success(self.name, result)
