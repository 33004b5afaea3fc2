"""
Sample Source Generator

Writes a customer agreement registry (CSV) and quarterly sales workbooks
(Excel) for local development.

Usage:
    python scripts/generate_sample_data.py --output data --customers 50 --quarters 2
"""

import argparse
import json
from pathlib import Path

import polars as pl

from sales_dashboard.data.generators import write_sample_sources


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate sample dashboard sources")
    parser.add_argument("--output", type=Path, default=Path("data"), help="Output directory")
    parser.add_argument("--customers", type=int, default=50, help="Customers in the registry")
    parser.add_argument("--quarters", type=int, default=2, help="Sales workbooks to write")
    parser.add_argument("--lines", type=int, default=1000, help="Sales lines per workbook")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    paths = write_sample_sources(
        args.output,
        customers=args.customers,
        quarters=args.quarters,
        lines_per_quarter=args.lines,
        seed=args.seed,
    )

    print("=" * 60)
    print("Sample sources written")
    print("=" * 60)
    for path in paths:
        size = path.stat().st_size / 1024
        print(f"   {path}: {size:.1f} KB")

    registry = pl.read_csv(paths[0])
    print(f"\nCustomers: {len(registry)}  Sales files: {len(paths) - 1}")
    print(f"Set SOURCES_SALES_FILES='{json.dumps([p.name for p in paths[1:]])}'")


if __name__ == "__main__":
    main()
