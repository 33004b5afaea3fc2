"""
Raw Source Readers

Turns raw source bytes into header + row tables:
- CSV via Polars (every column read as text, blank lines skipped)
- Spreadsheets (first sheet of .xlsx/.xls) via Pandas
"""

import io
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Union

import pandas as pd
import polars as pl
import structlog

from sales_dashboard.transformation.normalizers import SourceFormat

logger = structlog.get_logger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls", ".xlsm")
CSV_EXTENSIONS = (".csv",)


@dataclass
class RawTable:
    """Rows of one raw source, keyed by the source's own headers"""
    name: str
    source_format: SourceFormat
    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


def detect_format(name: str) -> SourceFormat:
    """Infer the source format from a file name or URL"""
    suffix = PurePosixPath(name.split("?", 1)[0]).suffix.lower()
    if suffix in SPREADSHEET_EXTENSIONS:
        return SourceFormat.SPREADSHEET
    if suffix in CSV_EXTENSIONS:
        return SourceFormat.CSV
    raise ValueError(f"Unsupported source file type: {name}")


def _read_csv(data: bytes) -> pl.DataFrame:
    """Read CSV with Polars, keeping every cell as text"""
    if not data.strip():
        return pl.DataFrame()
    return pl.read_csv(
        io.BytesIO(data),
        infer_schema_length=0,
        null_values=[""],
        truncate_ragged_lines=True,
        encoding="utf8-lossy",
    )


def _read_spreadsheet(data: bytes) -> pd.DataFrame:
    """Read the first sheet of a workbook with Pandas"""
    df = pd.read_excel(io.BytesIO(data), sheet_name=0, dtype=object)
    # Blank cells become None rather than NaN
    return df.astype(object).where(pd.notna(df), None)


def read_table(
    data: bytes,
    source_format: Union[SourceFormat, str],
    name: str = "<memory>",
) -> RawTable:
    """
    Parse raw source bytes into a ``RawTable``.

    Args:
        data: Raw file contents
        source_format: CSV or SPREADSHEET
        name: Source name used for logging

    Returns:
        RawTable with headers in source order and one dict per data row
    """
    source_format = SourceFormat(source_format)

    if source_format == SourceFormat.CSV:
        df = _read_csv(data)
        headers = list(df.columns)
        rows = [
            row for row in df.iter_rows(named=True)
            if any(value is not None and str(value).strip() for value in row.values())
        ]
    else:
        df = _read_spreadsheet(data)
        headers = [str(column) for column in df.columns]
        df.columns = headers
        rows = [
            row for row in df.to_dict(orient="records")
            if any(value is not None for value in row.values())
        ]

    logger.debug(
        "Source parsed",
        source=name,
        format=source_format.value,
        columns=len(headers),
        rows=len(rows),
    )

    return RawTable(name=name, source_format=source_format, headers=headers, rows=rows)
