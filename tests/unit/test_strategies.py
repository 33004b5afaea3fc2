"""
Unit Tests - Recompute Strategies
"""
from pathlib import Path

import httpx
import pytest

from sales_dashboard.ingestion.sources import SourceFetcher, SourceLoader
from sales_dashboard.serving.remote import RemoteComputeClient
from sales_dashboard.serving.strategies import (
    LocalComputeStrategy,
    RecomputeError,
    RemoteComputeStrategy,
    UploadedSourcesStrategy,
    build_result,
    compute_from_sources,
)
from sales_dashboard.transformation.models import CachedResult


def remote_returning(status_code: int, body) -> RemoteComputeClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, json=body))
    return RemoteComputeClient("http://compute.test/update", client=httpx.AsyncClient(transport=transport))


def write_sources(config, agreement_csv, workbooks):
    with open(config.agreement_source_location, "wb") as fh:
        fh.write(agreement_csv)
    folder = Path(config.sales_source_folder)
    folder.mkdir(parents=True, exist_ok=True)
    for name, data in workbooks.items():
        (folder / name).write_bytes(data)


class TestBuildResult:

    def test_requires_agreements(self, sales_lines):
        with pytest.raises(RecomputeError, match="No valid customer agreements found"):
            build_result([], sales_lines)

    def test_requires_sales(self, agreements):
        with pytest.raises(RecomputeError, match="No valid sales data found"):
            build_result(agreements, [])


class TestRemoteComputeStrategy:

    @pytest.mark.asyncio
    async def test_not_configured(self):
        outcome = await RemoteComputeStrategy(None).compute()

        assert not outcome.ok
        assert outcome.strategy == "remote"

    @pytest.mark.asyncio
    async def test_success(self, sample_result):
        client = remote_returning(200, {"success": True, "data": sample_result.to_payload()})

        outcome = await RemoteComputeStrategy(client).compute()

        assert outcome.ok
        assert outcome.result == sample_result

    @pytest.mark.asyncio
    async def test_server_error(self):
        outcome = await RemoteComputeStrategy(remote_returning(503, {"error": "busy"})).compute()
        assert outcome.error == "Remote compute returned HTTP 503"

    @pytest.mark.asyncio
    async def test_empty_result_is_a_failure(self):
        client = remote_returning(200, {"success": True, "data": CachedResult().to_payload()})

        outcome = await RemoteComputeStrategy(client).compute()

        assert not outcome.ok


class TestLocalComputeStrategy:

    @pytest.mark.asyncio
    async def test_computes_from_configured_sources(
        self, dashboard_config, agreement_csv, sales_workbook
    ):
        write_sources(dashboard_config, agreement_csv, {"sales_q1.xlsx": sales_workbook})

        outcome = await LocalComputeStrategy(SourceLoader(SourceFetcher()), dashboard_config).compute()

        assert outcome.ok
        assert outcome.result.summary.customer_count == 3
        assert outcome.result.summary.total_achieved == 850.0

    @pytest.mark.asyncio
    async def test_all_sales_sources_missing(self, dashboard_config, agreement_csv):
        write_sources(dashboard_config, agreement_csv, {})

        with pytest.raises(RecomputeError, match="No sales source reachable"):
            await compute_from_sources(SourceLoader(SourceFetcher()), dashboard_config)

        outcome = await LocalComputeStrategy(SourceLoader(SourceFetcher()), dashboard_config).compute()
        assert not outcome.ok

    @pytest.mark.asyncio
    async def test_missing_registry(self, dashboard_config):
        outcome = await LocalComputeStrategy(SourceLoader(SourceFetcher()), dashboard_config).compute()

        assert not outcome.ok
        assert "customer_master.csv" in outcome.error


class TestUploadedSourcesStrategy:

    @pytest.mark.asyncio
    async def test_success(self, agreement_csv, sales_workbook):
        strategy = UploadedSourcesStrategy(
            agreements=("customer_master.csv", agreement_csv),
            sales=[("sales_q1.xlsx", sales_workbook)],
        )

        outcome = await strategy.compute()

        assert outcome.ok
        assert outcome.strategy == "upload"
        assert outcome.result.find("C001").achieved_volume == 750.0

    @pytest.mark.asyncio
    async def test_sales_without_matching_rows(self, agreement_csv, workbook_factory):
        strategy = UploadedSourcesStrategy(
            agreements=("customer_master.csv", agreement_csv),
            sales=[("sales_q1.xlsx", workbook_factory([{"Region": "North"}]))],
        )

        outcome = await strategy.compute()

        assert outcome.error == "No valid sales data found"

    @pytest.mark.asyncio
    async def test_corrupt_file(self, agreement_csv):
        strategy = UploadedSourcesStrategy(
            agreements=("customer_master.csv", agreement_csv),
            sales=[("sales_q1.xlsx", b"garbage")],
        )

        outcome = await strategy.compute()

        assert not outcome.ok
        assert outcome.error.startswith("Error processing files")
