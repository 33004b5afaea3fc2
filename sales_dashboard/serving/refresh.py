"""
Refresh Coordinator

Decides when the aggregation has to run and keeps the displayed result,
the local cache and the shared cache in step.

States:
    IDLE -> LOADING_LOCAL -> (READY) -> LOADING_SHARED -> READY
                                                       -> RECOMPUTING -> READY | FAILED

- Startup shows the local snapshot immediately when one exists and
  reconciles with the shared cache in the background.
- Only a true cold start (both caches empty) recomputes on startup.
- Manual and periodic triggers always recompute.
- One recompute at a time; a trigger arriving mid-recompute is coalesced.
- A failed recompute never clears the displayed result.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Set

import structlog
from prometheus_client import Counter

from sales_dashboard.config import DashboardConfig, Settings, get_settings, load_dashboard_config
from sales_dashboard.ingestion.sources import SourceFetcher, SourceLoader
from sales_dashboard.transformation.models import CachedResult
from .cache import CacheManager
from .remote import RemoteComputeClient
from .stores import CacheStore, LocalCacheStore, SharedCacheStore
from .strategies import (
    ComputeOutcome,
    ComputeStrategy,
    LocalComputeStrategy,
    RemoteComputeStrategy,
)

logger = structlog.get_logger(__name__)


REFRESH_TOTAL = Counter(
    "dashboard_refresh_total",
    "Refresh triggers by outcome",
    ["trigger", "outcome"],
)


class RefreshState(str, Enum):
    """Coordinator states"""
    IDLE = "idle"
    LOADING_LOCAL = "loading_local"
    LOADING_SHARED = "loading_shared"
    RECOMPUTING = "recomputing"
    READY = "ready"
    FAILED = "failed"


class RefreshTrigger(str, Enum):
    """What asked for fresh data"""
    STARTUP = "startup"
    MANUAL = "manual"
    PERIODIC = "periodic"


class RefreshInProgressError(RuntimeError):
    """A recompute is already running and the caller asked not to coalesce"""


class RefreshFailedError(RuntimeError):
    """A manually triggered recompute produced no result"""

    def __init__(self, message: str, outcomes: Sequence[ComputeOutcome] = ()):
        super().__init__(message)
        self.outcomes = list(outcomes)


@dataclass(frozen=True)
class DisplaySnapshot:
    """
    What consumers currently see.

    Replaced as a whole on every transition, never mutated.
    """
    state: RefreshState = RefreshState.IDLE
    result: Optional[CachedResult] = None
    source: Optional[str] = None
    trigger: Optional[RefreshTrigger] = None
    last_error: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_data(self) -> bool:
        return self.result is not None and not self.result.is_empty


class RefreshCoordinator:
    """
    Owns the current result and orchestrates the two cache tiers.

    Example:
        coordinator = RefreshCoordinator(local_store, shared_store, strategies)
        await coordinator.startup()
        coordinator.start_auto_refresh()
        ...
        await coordinator.refresh(RefreshTrigger.MANUAL)
    """

    def __init__(
        self,
        local_store: CacheStore,
        shared_store: CacheStore,
        strategies: Sequence[ComputeStrategy],
        interval_seconds: float = 300.0,
    ):
        self.local_store = local_store
        self.shared_store = shared_store
        self.strategies = list(strategies)
        self.interval_seconds = interval_seconds

        self._snapshot = DisplaySnapshot()
        self._lock = asyncio.Lock()
        # Serializes local snapshot writes from publish and reconciliation
        self._local_lock = asyncio.Lock()
        # Bumped on every publish; stale shared reads compare against it
        self._generation = 0
        self._background: Set[asyncio.Task] = set()
        self._periodic_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> DisplaySnapshot:
        return self._snapshot

    @property
    def state(self) -> RefreshState:
        return self._snapshot.state

    @property
    def current(self) -> Optional[CachedResult]:
        return self._snapshot.result

    @property
    def is_recomputing(self) -> bool:
        return self._lock.locked()

    def _transition(self, state: RefreshState, **changes) -> None:
        previous = self._snapshot.state
        self._snapshot = replace(
            self._snapshot,
            state=state,
            updated_at=datetime.now(timezone.utc),
            **changes,
        )
        logger.debug("Refresh state changed", previous=previous.value, state=state.value)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def startup(self) -> DisplaySnapshot:
        """
        Show whatever is cached, then reconcile.

        Returns once something is displayed or the cold-start recompute has
        finished; the shared-cache reconciliation of a warm start continues
        in the background.
        """
        self._transition(RefreshState.LOADING_LOCAL, trigger=RefreshTrigger.STARTUP)

        local = await self.local_store.read()
        if local is not None and not local.is_empty:
            self._transition(RefreshState.READY, result=local, source=self.local_store.name)
            logger.info("Displaying local snapshot", computed_at=local.computed_at.isoformat())
            self._spawn(self._reconcile_shared(cold=False))
            return self.snapshot

        await self._reconcile_shared(cold=True)
        return self.snapshot

    async def _reconcile_shared(self, cold: bool) -> None:
        generation = self._generation
        if cold:
            self._transition(RefreshState.LOADING_SHARED)

        shared = await self.shared_store.read()

        if shared is not None and not shared.is_empty:
            if generation != self._generation:
                logger.info("Discarding shared snapshot, a newer result was published")
                return
            state = RefreshState.RECOMPUTING if self.is_recomputing else RefreshState.READY
            self._transition(state, result=shared, source=self.shared_store.name)
            async with self._local_lock:
                if generation != self._generation:
                    logger.info("Skipping local write of shared snapshot, a newer result was published")
                    return
                await self.local_store.write(shared)
            logger.info("Displaying shared snapshot", computed_at=shared.computed_at.isoformat())
            return

        if cold and self._snapshot.result is None:
            logger.info("Both caches empty, recomputing")
            await self.refresh(RefreshTrigger.STARTUP)
        elif cold:
            self._transition(RefreshState.READY)

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    async def _attempt(self, strategy: ComputeStrategy) -> ComputeOutcome:
        try:
            return await strategy.compute()
        except Exception as e:
            logger.exception("Recompute strategy crashed", strategy=strategy.name)
            return ComputeOutcome.failure(strategy.name, str(e))

    async def _publish(self, result: CachedResult, source: str) -> None:
        # Invalidate in-flight shared reads before the first await
        self._generation += 1

        if not await self.shared_store.write(result):
            logger.warning("Shared cache not updated, keeping result locally")
        async with self._local_lock:
            if not await self.local_store.write(result):
                logger.warning("Local cache not updated")

        self._transition(RefreshState.READY, result=result, source=source, last_error=None)

    def _fail(self, trigger: RefreshTrigger, outcomes: List[ComputeOutcome]) -> DisplaySnapshot:
        message = "; ".join(f"{o.strategy}: {o.error}" for o in outcomes) or "no recompute strategy configured"
        self._transition(RefreshState.FAILED, last_error=message)
        REFRESH_TOTAL.labels(trigger=trigger.value, outcome="failed").inc()

        if trigger == RefreshTrigger.PERIODIC:
            logger.warning("Periodic refresh failed, retrying next interval", error=message)
            return self.snapshot

        logger.error(
            "Refresh failed",
            trigger=trigger.value,
            error=message,
            keeping_previous=self._snapshot.result is not None,
        )
        if trigger == RefreshTrigger.MANUAL:
            raise RefreshFailedError(message, outcomes)
        return self.snapshot

    async def refresh(
        self,
        trigger: RefreshTrigger = RefreshTrigger.MANUAL,
        strategies: Optional[Sequence[ComputeStrategy]] = None,
        coalesce: bool = True,
    ) -> DisplaySnapshot:
        """
        Recompute and publish a fresh result.

        Args:
            trigger: Who asked; decides whether a failure is raised
            strategies: Override the configured strategy chain (e.g. uploads)
            coalesce: When False, a running recompute raises instead of
                returning the current snapshot

        Returns:
            The snapshot after the refresh, or the current one when coalesced

        Raises:
            RefreshFailedError: If a MANUAL refresh produced no result
            RefreshInProgressError: If another recompute is running and
                ``coalesce`` is False
        """
        trigger = RefreshTrigger(trigger)

        if self._lock.locked():
            if not coalesce:
                REFRESH_TOTAL.labels(trigger=trigger.value, outcome="rejected").inc()
                raise RefreshInProgressError("A refresh is already running")
            REFRESH_TOTAL.labels(trigger=trigger.value, outcome="coalesced").inc()
            logger.info("Recompute already in flight, trigger coalesced", trigger=trigger.value)
            return self.snapshot

        async with self._lock:
            self._transition(RefreshState.RECOMPUTING, trigger=trigger)

            outcomes: List[ComputeOutcome] = []
            for strategy in strategies or self.strategies:
                outcome = await self._attempt(strategy)
                outcomes.append(outcome)
                if outcome.ok:
                    break
            else:
                return self._fail(trigger, outcomes)

            await self._publish(outcome.result, outcome.strategy)

        REFRESH_TOTAL.labels(trigger=trigger.value, outcome="success").inc()
        logger.info(
            "Refresh complete",
            trigger=trigger.value,
            strategy=outcome.strategy,
            customers=outcome.result.summary.customer_count,
            overall_progress=round(outcome.result.summary.overall_progress, 2),
        )
        return self.snapshot

    # ------------------------------------------------------------------
    # Periodic refresh
    # ------------------------------------------------------------------

    async def _run_periodic(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.refresh(RefreshTrigger.PERIODIC)
            except Exception:
                logger.exception("Periodic refresh crashed")

    def start_auto_refresh(self) -> None:
        """Start the periodic refresh loop (idempotent)"""
        if self._periodic_task is None or self._periodic_task.done():
            self._periodic_task = asyncio.create_task(self._run_periodic())
            logger.info("Auto refresh started", interval_seconds=self.interval_seconds)

    async def drain(self) -> None:
        """Wait for background reconciliation tasks"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def stop(self) -> None:
        """Stop the periodic loop and cancel background work"""
        tasks = list(self._background)
        if self._periodic_task is not None:
            tasks.append(self._periodic_task)
            self._periodic_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Refresh coordinator stopped")


def create_coordinator(
    settings: Optional[Settings] = None,
    config: Optional[DashboardConfig] = None,
) -> RefreshCoordinator:
    """Create a coordinator wired from application settings"""
    settings = settings or get_settings()
    config = config or load_dashboard_config(settings)

    remote_client = None
    if settings.refresh.remote_compute_url:
        remote_client = RemoteComputeClient(
            settings.refresh.remote_compute_url,
            timeout=settings.refresh.remote_timeout_seconds,
        )

    loader = SourceLoader(
        SourceFetcher(timeout=settings.sources.fetch_timeout_seconds),
        max_parallel=settings.sources.max_parallel_fetches,
    )

    return RefreshCoordinator(
        local_store=LocalCacheStore(settings.refresh.local_cache_path),
        shared_store=SharedCacheStore(
            CacheManager(settings.refresh.shared_namespace),
            key=settings.refresh.shared_key,
        ),
        strategies=[
            RemoteComputeStrategy(remote_client),
            LocalComputeStrategy(loader, config),
        ],
        interval_seconds=config.auto_refresh_interval_seconds,
    )
