"""
Unit Tests - Refresh Coordinator
"""
import asyncio

import pytest

from conftest import BlockingStrategy, FailingStore, FakeStrategy, MemoryCacheStore
from sales_dashboard.ingestion.sources import SourceFetcher, SourceLoader
from sales_dashboard.serving.refresh import (
    RefreshCoordinator,
    RefreshFailedError,
    RefreshInProgressError,
    RefreshState,
    RefreshTrigger,
)
from sales_dashboard.serving.strategies import ComputeOutcome, LocalComputeStrategy


class BlockingStore(MemoryCacheStore):
    """Shared store whose reads wait until released"""

    name = "shared"

    def __init__(self, result=None):
        super().__init__(result)
        self.release = asyncio.Event()

    async def read(self):
        await self.release.wait()
        return await super().read()


class SlowStore(MemoryCacheStore):
    """Store that returns the value it held when a read began, after a delay"""

    def __init__(self, result=None, read_delay=0.0, write_delay=0.0):
        super().__init__(result)
        self.read_delay = read_delay
        self.write_delay = write_delay

    async def read(self):
        result = self._result
        await asyncio.sleep(self.read_delay)
        return result

    async def write(self, result):
        await asyncio.sleep(self.write_delay)
        return await super().write(result)


class CrashingStrategy:
    name = "crashing"

    async def compute(self) -> ComputeOutcome:
        raise RuntimeError("unexpected")


def make_coordinator(strategies, local=None, shared=None, interval_seconds=300.0):
    local = local if local is not None else MemoryCacheStore()
    shared = shared if shared is not None else MemoryCacheStore()
    shared.name = "shared"
    return RefreshCoordinator(local, shared, strategies, interval_seconds=interval_seconds)


class TestStartup:
    """Startup decision between local, shared and recompute"""

    @pytest.mark.asyncio
    async def test_cold_start_recomputes_and_publishes(self, sample_result):
        strategy = FakeStrategy("local", [sample_result])
        local, shared = MemoryCacheStore(), MemoryCacheStore()
        coordinator = make_coordinator([strategy], local, shared)

        snapshot = await coordinator.startup()

        assert snapshot.state == RefreshState.READY
        assert snapshot.result == sample_result
        assert snapshot.source == "local"
        assert strategy.calls == 1
        assert await local.read() == sample_result
        assert await shared.read() == sample_result

    @pytest.mark.asyncio
    async def test_shared_snapshot_populates_local(self, sample_result):
        strategy = FakeStrategy("local", [sample_result])
        local, shared = MemoryCacheStore(), MemoryCacheStore(sample_result)
        coordinator = make_coordinator([strategy], local, shared)

        snapshot = await coordinator.startup()

        assert snapshot.state == RefreshState.READY
        assert snapshot.source == "shared"
        assert strategy.calls == 0
        assert await local.read() == sample_result

    @pytest.mark.asyncio
    async def test_warm_start_displays_local_then_shared(self, sample_result, other_result):
        strategy = FakeStrategy("local", [sample_result])
        local, shared = MemoryCacheStore(sample_result), MemoryCacheStore(other_result)
        coordinator = make_coordinator([strategy], local, shared)

        snapshot = await coordinator.startup()
        assert snapshot.state == RefreshState.READY
        assert snapshot.result == sample_result

        await coordinator.drain()

        assert coordinator.current == other_result
        assert coordinator.snapshot.source == "shared"
        assert await local.read() == other_result
        assert strategy.calls == 0

    @pytest.mark.asyncio
    async def test_warm_start_with_empty_shared_does_not_recompute(self, sample_result):
        strategy = FakeStrategy("local", [sample_result])
        coordinator = make_coordinator([strategy], MemoryCacheStore(sample_result), MemoryCacheStore())

        await coordinator.startup()
        await coordinator.drain()

        assert strategy.calls == 0
        assert coordinator.current == sample_result
        assert coordinator.state == RefreshState.READY

    @pytest.mark.asyncio
    async def test_cold_start_failure_is_recorded_not_raised(self):
        coordinator = make_coordinator([FakeStrategy("local", [None], error="sources down")])

        snapshot = await coordinator.startup()

        assert snapshot.state == RefreshState.FAILED
        assert snapshot.result is None
        assert "sources down" in snapshot.last_error

    @pytest.mark.asyncio
    async def test_stale_shared_read_is_discarded(self, sample_result, other_result):
        shared = BlockingStore(other_result)
        coordinator = make_coordinator([FakeStrategy("local", [sample_result])], MemoryCacheStore(other_result), shared)

        await coordinator.startup()
        # let the background reconciliation start its shared read
        await asyncio.sleep(0)
        await coordinator.refresh(RefreshTrigger.MANUAL)
        shared.release.set()
        await coordinator.drain()

        assert coordinator.current == sample_result
        assert coordinator.snapshot.source == "local"

    @pytest.mark.asyncio
    async def test_shared_read_landing_mid_publish_does_not_overwrite_local(self, sample_result, other_result):
        local = SlowStore(other_result, write_delay=0.05)
        shared = SlowStore(other_result, read_delay=0.02)
        coordinator = make_coordinator([FakeStrategy("local", [sample_result])], local, shared)

        await coordinator.startup()
        # background reconciliation is now mid-read of the old shared value
        await asyncio.sleep(0)
        await coordinator.refresh(RefreshTrigger.MANUAL)
        await coordinator.drain()

        assert coordinator.current == sample_result
        assert await shared.read() == sample_result
        assert await local.read() == sample_result

    @pytest.mark.asyncio
    async def test_warm_start_then_unreachable_sources(self, sample_result, dashboard_config):
        strategy = LocalComputeStrategy(SourceLoader(SourceFetcher()), dashboard_config)
        shared = MemoryCacheStore()
        coordinator = make_coordinator([strategy], MemoryCacheStore(sample_result), shared)

        await coordinator.startup()
        await coordinator.drain()
        assert coordinator.state == RefreshState.READY

        with pytest.raises(RefreshFailedError) as exc_info:
            await coordinator.refresh(RefreshTrigger.MANUAL)

        assert [o.strategy for o in exc_info.value.outcomes] == ["local"]
        assert coordinator.state == RefreshState.FAILED
        assert coordinator.current == sample_result
        assert coordinator.snapshot.last_error.startswith("local: ")
        assert await shared.read() is None


class TestRefresh:
    """Manual and periodic recomputes"""

    @pytest.mark.asyncio
    async def test_falls_back_to_next_strategy(self, sample_result):
        remote = FakeStrategy("remote", [None], error="remote down")
        local = FakeStrategy("local", [sample_result])
        coordinator = make_coordinator([remote, local])

        snapshot = await coordinator.refresh(RefreshTrigger.MANUAL)

        assert snapshot.source == "local"
        assert remote.calls == 1
        assert local.calls == 1

    @pytest.mark.asyncio
    async def test_first_success_stops_the_chain(self, sample_result):
        remote = FakeStrategy("remote", [sample_result])
        local = FakeStrategy("local", [sample_result])

        await make_coordinator([remote, local]).refresh()

        assert local.calls == 0

    @pytest.mark.asyncio
    async def test_manual_failure_raises_and_keeps_display(self, sample_result):
        strategy = FakeStrategy("local", [sample_result, None], error="registry missing")
        coordinator = make_coordinator([strategy])
        await coordinator.refresh(RefreshTrigger.MANUAL)

        with pytest.raises(RefreshFailedError) as exc_info:
            await coordinator.refresh(RefreshTrigger.MANUAL)

        assert "registry missing" in str(exc_info.value)
        assert [o.strategy for o in exc_info.value.outcomes] == ["local"]
        assert coordinator.state == RefreshState.FAILED
        assert coordinator.current == sample_result

    @pytest.mark.asyncio
    async def test_periodic_failure_is_silent(self, sample_result):
        coordinator = make_coordinator([FakeStrategy("local", [sample_result, None])])
        await coordinator.refresh(RefreshTrigger.MANUAL)

        snapshot = await coordinator.refresh(RefreshTrigger.PERIODIC)

        assert snapshot.state == RefreshState.FAILED
        assert snapshot.result == sample_result

    @pytest.mark.asyncio
    async def test_success_after_failure_clears_error(self, sample_result):
        coordinator = make_coordinator([FakeStrategy("local", [None, sample_result])])

        await coordinator.refresh(RefreshTrigger.PERIODIC)
        snapshot = await coordinator.refresh(RefreshTrigger.PERIODIC)

        assert snapshot.state == RefreshState.READY
        assert snapshot.last_error is None

    @pytest.mark.asyncio
    async def test_crashing_strategy_counts_as_failure(self, sample_result):
        coordinator = make_coordinator([CrashingStrategy(), FakeStrategy("local", [sample_result])])

        snapshot = await coordinator.refresh()

        assert snapshot.source == "local"

    @pytest.mark.asyncio
    async def test_shared_write_failure_still_updates_local(self, sample_result):
        local = MemoryCacheStore()
        coordinator = make_coordinator([FakeStrategy("local", [sample_result])], local, FailingStore())

        snapshot = await coordinator.refresh()

        assert snapshot.state == RefreshState.READY
        assert await local.read() == sample_result

    @pytest.mark.asyncio
    async def test_strategy_override(self, sample_result, other_result):
        configured = FakeStrategy("local", [sample_result])
        upload = FakeStrategy("upload", [other_result])
        coordinator = make_coordinator([configured])

        snapshot = await coordinator.refresh(RefreshTrigger.MANUAL, strategies=[upload])

        assert snapshot.result == other_result
        assert configured.calls == 0

    @pytest.mark.asyncio
    async def test_concurrent_triggers_are_coalesced(self, sample_result):
        strategy = BlockingStrategy(sample_result)
        coordinator = make_coordinator([strategy])

        first = asyncio.create_task(coordinator.refresh(RefreshTrigger.MANUAL))
        await strategy.started.wait()
        assert coordinator.is_recomputing
        assert coordinator.state == RefreshState.RECOMPUTING

        coalesced = await coordinator.refresh(RefreshTrigger.PERIODIC)
        assert coalesced.state == RefreshState.RECOMPUTING

        strategy.release.set()
        snapshot = await first

        assert strategy.calls == 1
        assert snapshot.state == RefreshState.READY
        assert not coordinator.is_recomputing

    @pytest.mark.asyncio
    async def test_non_coalescing_trigger_is_rejected_mid_recompute(self, sample_result, other_result):
        strategy = BlockingStrategy(sample_result)
        upload = FakeStrategy("upload", [other_result])
        coordinator = make_coordinator([strategy])

        running = asyncio.create_task(coordinator.refresh(RefreshTrigger.PERIODIC))
        await strategy.started.wait()

        with pytest.raises(RefreshInProgressError):
            await coordinator.refresh(RefreshTrigger.MANUAL, strategies=[upload], coalesce=False)

        strategy.release.set()
        snapshot = await running

        assert upload.calls == 0
        assert snapshot.result == sample_result


class TestAutoRefresh:

    @pytest.mark.asyncio
    async def test_periodic_loop_recomputes(self, sample_result):
        strategy = FakeStrategy("local", [sample_result])
        coordinator = make_coordinator([strategy], interval_seconds=0.01)

        coordinator.start_auto_refresh()
        coordinator.start_auto_refresh()
        await asyncio.sleep(0.1)
        await coordinator.stop()

        assert strategy.calls >= 2
        assert coordinator.current == sample_result
