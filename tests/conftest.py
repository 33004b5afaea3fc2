"""
Test Suite Configuration
"""
import asyncio
import io
from datetime import datetime, timezone
from typing import List, Optional

import pandas as pd
import pytest

from sales_dashboard.config import DashboardConfig, Settings
from sales_dashboard.serving.strategies import ComputeOutcome
from sales_dashboard.transformation.aggregator import compute_result
from sales_dashboard.transformation.models import Agreement, CachedResult, SaleLine


class FakeStrategy:
    """Scripted recompute strategy; pops one outcome per call"""

    def __init__(self, name: str, results: List[Optional[CachedResult]], error: str = "boom"):
        self.name = name
        self.results = list(results)
        self.error = error
        self.calls = 0

    async def compute(self) -> ComputeOutcome:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if result is None:
            return ComputeOutcome.failure(self.name, self.error)
        return ComputeOutcome.success(self.name, result)


class BlockingStrategy:
    """Strategy that waits until released"""

    name = "blocking"

    def __init__(self, result):
        self.result = result
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def compute(self) -> ComputeOutcome:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return ComputeOutcome.success(self.name, self.result)


class MemoryCacheStore:
    """In-process result store holding one result"""

    name = "memory"

    def __init__(self, result: Optional[CachedResult] = None):
        self._result = result

    async def read(self) -> Optional[CachedResult]:
        return self._result

    async def write(self, result: CachedResult) -> bool:
        self._result = result
        return True


class FailingStore(MemoryCacheStore):
    """Store whose writes always fail"""

    name = "failing"

    async def write(self, result: CachedResult) -> bool:
        return False


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def dashboard_config(tmp_path) -> DashboardConfig:
    """Source layout pointing at a temporary directory"""
    return DashboardConfig(
        agreement_source_location=str(tmp_path / "customer_master.csv"),
        sales_source_folder=str(tmp_path / "sales"),
        sales_source_files=["sales_q1.xlsx", "sales_q2.xlsx"],
        auto_refresh_interval_ms=60_000,
    )


@pytest.fixture
def agreement_csv() -> bytes:
    """Agreement registry as CSV bytes"""
    return (
        "Customer Code,Customer Name,Agreement Start Date,Agreement End Date,Agreement Target Volume\n"
        "C001,Acme Builders,2025-01-01,2025-12-31,1000\n"
        "C002,Beta Infra,2025-02-01,2026-01-31,500\n"
        "C003,Gamma Homes,2025-03-01,2026-02-28,0\n"
    ).encode("utf-8")


@pytest.fixture
def agreements() -> List[Agreement]:
    return [
        Agreement(customer_code="C001", customer_name="Acme Builders", target_volume=1000),
        Agreement(customer_code="C002", customer_name="Beta Infra", target_volume=500),
        Agreement(customer_code="C003", customer_name="Gamma Homes", target_volume=0),
    ]


@pytest.fixture
def sales_lines() -> List[SaleLine]:
    return [
        SaleLine(customer_code="C001", product_name="Cement", volume=300),
        SaleLine(customer_code="C001", product_name="Steel", volume=450),
        SaleLine(customer_code="C002", product_name="Cement", volume=100),
        SaleLine(customer_code="C001", product_name="Cement", volume=200),
        SaleLine(customer_code="X999", product_name="Cement", volume=9999),
    ]


@pytest.fixture
def sample_result(agreements, sales_lines) -> CachedResult:
    """Aggregated result of the sample agreements and sales"""
    return compute_result(
        agreements,
        sales_lines,
        computed_at=datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def other_result() -> CachedResult:
    """A second, distinguishable result"""
    return compute_result(
        [Agreement(customer_code="D100", customer_name="Delta Traders", target_volume=200)],
        [SaleLine(customer_code="D100", product_name="Tiles", volume=50)],
        computed_at=datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc),
    )


def make_workbook(rows: List[dict], columns: Optional[List[str]] = None) -> bytes:
    """Render rows as .xlsx bytes"""
    buffer = io.BytesIO()
    pd.DataFrame(rows, columns=columns).to_excel(buffer, index=False, sheet_name="Sales")
    return buffer.getvalue()


@pytest.fixture
def sales_workbook() -> bytes:
    """Sales extract with fuzzy-matching spreadsheet headers"""
    return make_workbook([
        {"Invoice Date": "2025-01-05", "Customer Code ": "C001", "Product Name (SKU)": "Cement", "Product Volume (MT)": 300},
        {"Invoice Date": "2025-01-06", "Customer Code ": "C001", "Product Name (SKU)": "Steel", "Product Volume (MT)": 450},
        {"Invoice Date": "2025-01-07", "Customer Code ": "C002", "Product Name (SKU)": None, "Product Volume (MT)": 100},
    ])


@pytest.fixture
def workbook_factory():
    """Builds .xlsx bytes from row dicts"""
    return make_workbook
