"""
Synthetic Data Generator

Generates sample sources for development and demos:
- Customer agreement registry (CSV)
- Quarterly sales extracts (Excel workbooks)
"""

import random
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd
import polars as pl
from faker import Faker

fake = Faker()

PRODUCTS = [
    "Premium Cement 50kg",
    "Ready Mix M25",
    "TMT Bar 12mm",
    "TMT Bar 16mm",
    "Fly Ash Bricks",
    "Waterproofing Compound",
    "Tile Adhesive",
    "Wall Putty",
]

AGREEMENT_COLUMNS = [
    "Customer Code",
    "Customer Name",
    "Agreement Start Date",
    "Agreement End Date",
    "Agreement Target Volume",
]

SALES_COLUMNS = ["Invoice Date", "Customer Code", "Product Name", "Product Volume"]


def seed_everything(seed: int = 42) -> None:
    """Seed every random source for reproducible output"""
    random.seed(seed)
    np.random.seed(seed)
    Faker.seed(seed)


class AgreementGenerator:
    """Generate a customer agreement registry"""

    def __init__(self, code_prefix: str = "C", start_year: int = 2025):
        self.code_prefix = code_prefix
        self.start_year = start_year

    def generate(self, n: int = 50) -> pl.DataFrame:
        starts = [
            date(self.start_year, 1, 1) + timedelta(days=int(offset))
            for offset in np.random.randint(0, 90, n)
        ]
        return pl.DataFrame({
            "Customer Code": [f"{self.code_prefix}{1000 + i}" for i in range(n)],
            "Customer Name": [fake.company() for _ in range(n)],
            "Agreement Start Date": [d.isoformat() for d in starts],
            "Agreement End Date": [(d + timedelta(days=365)).isoformat() for d in starts],
            "Agreement Target Volume": np.round(np.random.uniform(500, 20000, n), 0),
        })


class SalesGenerator:
    """Generate sales extract lines against a registry"""

    def __init__(self, unmatched_rate: float = 0.02, products: Optional[List[str]] = None):
        self.unmatched_rate = unmatched_rate
        self.products = products or PRODUCTS

    def generate(
        self,
        customer_codes: List[str],
        n: int = 1000,
        period_start: Optional[date] = None,
    ) -> pd.DataFrame:
        period_start = period_start or date(2025, 1, 1)
        codes = list(np.random.choice(customer_codes, n))

        # A few lines for customers missing from the registry
        for i in range(n):
            if random.random() < self.unmatched_rate:
                codes[i] = f"X{random.randint(1, 999):03d}"

        return pd.DataFrame({
            "Invoice Date": [
                (period_start + timedelta(days=int(d))).isoformat()
                for d in np.random.randint(0, 90, n)
            ],
            "Customer Code": codes,
            "Product Name": np.random.choice(self.products, n),
            "Product Volume": np.round(np.random.exponential(40, n), 1),
        })


def write_sample_sources(
    output_dir: Path,
    customers: int = 50,
    quarters: int = 2,
    lines_per_quarter: int = 1000,
    seed: int = 42,
) -> List[Path]:
    """
    Write a sample registry CSV and one sales workbook per quarter.

    Returns:
        Paths of the written files, registry first
    """
    seed_everything(seed)
    output_dir = Path(output_dir)
    sales_dir = output_dir / "sales"
    sales_dir.mkdir(parents=True, exist_ok=True)

    registry = AgreementGenerator().generate(customers)
    registry_path = output_dir / "customer_master.csv"
    registry.write_csv(registry_path)
    written = [registry_path]

    codes = registry["Customer Code"].to_list()
    sales = SalesGenerator()
    for quarter in range(1, quarters + 1):
        period_start = date(2025, 3 * (quarter - 1) + 1, 1)
        df = sales.generate(codes, lines_per_quarter, period_start)
        path = sales_dir / f"sales_q{quarter}.xlsx"
        df.to_excel(path, index=False, sheet_name="Sales")
        written.append(path)

    return written
