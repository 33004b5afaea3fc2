"""
Record Normalizer

Turns raw tabular rows (column name -> raw cell value) into typed
``Agreement`` and ``SaleLine`` records.

Handles:
- Header resolution from declarative column specs (exact or fuzzy)
- Tolerant numeric parsing (bad or missing numbers become 0)
- Silent dropping of rows that lack an identifying field

Normalization is a pure function of its input rows.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from .models import UNKNOWN_PRODUCT, Agreement, SaleLine

logger = structlog.get_logger(__name__)

_NUMERIC_NOISE = re.compile(r"[$€£¥,\s]")
_WHITESPACE = re.compile(r"\s+")


class SourceKind(str, Enum):
    """Kinds of raw source"""
    AGREEMENTS = "agreements"
    SALES = "sales"


class SourceFormat(str, Enum):
    """Raw source formats, each with its own header matching rule"""
    CSV = "csv"
    SPREADSHEET = "spreadsheet"


class HeaderMatch(str, Enum):
    """How a column label is matched against source headers"""
    EXACT = "exact"
    CONTAINS = "contains"


@dataclass(frozen=True)
class ColumnSpec:
    """Declares which source column feeds a record field"""
    field: str
    label: str
    required: bool = False

    def matches(self, header: Any, match: HeaderMatch) -> bool:
        if header is None:
            return False
        if match == HeaderMatch.EXACT:
            return str(header) == self.label
        return _fold(self.label) in _fold(str(header))


AGREEMENT_COLUMNS = (
    ColumnSpec("customer_code", "Customer Code", required=True),
    ColumnSpec("customer_name", "Customer Name", required=True),
    ColumnSpec("agreement_start_date", "Agreement Start Date"),
    ColumnSpec("agreement_end_date", "Agreement End Date"),
    ColumnSpec("target_volume", "Agreement Target Volume"),
)

SALES_COLUMNS = (
    ColumnSpec("customer_code", "Customer Code", required=True),
    ColumnSpec("product_name", "Product Name"),
    ColumnSpec("volume", "Product Volume", required=True),
)

COLUMN_SPECS = {
    SourceKind.AGREEMENTS: AGREEMENT_COLUMNS,
    SourceKind.SALES: SALES_COLUMNS,
}

HEADER_MATCHING = {
    SourceFormat.CSV: HeaderMatch.EXACT,
    SourceFormat.SPREADSHEET: HeaderMatch.CONTAINS,
}


def _fold(text: str) -> str:
    """Lowercase and collapse whitespace for fuzzy header matching"""
    return _WHITESPACE.sub(" ", text).strip().lower()


def resolve_columns(
    headers: Iterable[Any],
    specs: Sequence[ColumnSpec],
    match: HeaderMatch,
) -> Dict[str, Optional[str]]:
    """
    Map each declared field to the first source header that matches it.

    Fields without a matching header map to None.
    """
    headers = list(headers)
    resolved: Dict[str, Optional[str]] = {}
    for spec in specs:
        resolved[spec.field] = next(
            (header for header in headers if spec.matches(header, match)),
            None,
        )
    return resolved


def cell_text(value: Any) -> str:
    """
    Render a raw cell as trimmed text.

    None and NaN are empty; integral floats drop their ".0" so that numeric
    spreadsheet codes read the same as their CSV counterparts.
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def parse_volume(value: Any) -> float:
    """Parse a volume cell; absent, unparseable, non-finite or negative -> 0.0"""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _NUMERIC_NOISE.sub("", cell_text(value))
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _lookup(row: Mapping[str, Any], column: Optional[str]) -> Any:
    if column is None:
        return None
    return row.get(column)


def _to_agreement(row: Mapping[str, Any], columns: Dict[str, Optional[str]]) -> Optional[Agreement]:
    code = cell_text(_lookup(row, columns["customer_code"]))
    name = cell_text(_lookup(row, columns["customer_name"]))
    if not code or not name:
        return None

    return Agreement(
        customer_code=code,
        customer_name=name,
        agreement_start_date=cell_text(_lookup(row, columns["agreement_start_date"])),
        agreement_end_date=cell_text(_lookup(row, columns["agreement_end_date"])),
        target_volume=parse_volume(_lookup(row, columns["target_volume"])),
    )


def _to_sale_line(row: Mapping[str, Any], columns: Dict[str, Optional[str]]) -> Optional[SaleLine]:
    code = cell_text(_lookup(row, columns["customer_code"]))
    raw_volume = _lookup(row, columns["volume"])
    # Presence of the volume cell is required, its value is not
    if not code or not cell_text(raw_volume):
        return None

    return SaleLine(
        customer_code=code,
        product_name=cell_text(_lookup(row, columns["product_name"])) or UNKNOWN_PRODUCT,
        volume=parse_volume(raw_volume),
    )


def normalize_rows(
    rows: Sequence[Mapping[str, Any]],
    kind: Union[SourceKind, str],
    source_format: Union[SourceFormat, str] = SourceFormat.CSV,
    headers: Optional[Sequence[Any]] = None,
) -> List[Union[Agreement, SaleLine]]:
    """
    Normalize raw rows into typed records.

    Args:
        rows: Raw rows in source order
        kind: Which record type the rows describe
        source_format: Decides exact (CSV) or fuzzy (spreadsheet) header matching
        headers: Source headers; defaults to the keys of the first row

    Returns:
        Agreements or sale lines, in input order, malformed rows dropped
    """
    kind = SourceKind(kind)
    source_format = SourceFormat(source_format)

    if headers is None:
        headers = list(rows[0].keys()) if rows else []

    columns = resolve_columns(headers, COLUMN_SPECS[kind], HEADER_MATCHING[source_format])
    convert = _to_agreement if kind == SourceKind.AGREEMENTS else _to_sale_line

    records = []
    for row in rows:
        record = convert(row, columns)
        if record is not None:
            records.append(record)

    missing = [spec.label for spec in COLUMN_SPECS[kind] if spec.required and columns[spec.field] is None]
    logger.debug(
        "Rows normalized",
        kind=kind.value,
        format=source_format.value,
        input_rows=len(rows),
        output_rows=len(records),
        missing_columns=missing or None,
    )

    return records


def normalize_agreements(
    rows: Sequence[Mapping[str, Any]],
    source_format: Union[SourceFormat, str] = SourceFormat.CSV,
    headers: Optional[Sequence[Any]] = None,
) -> List[Agreement]:
    """Normalize agreement registry rows"""
    return normalize_rows(rows, SourceKind.AGREEMENTS, source_format, headers)


def normalize_sales(
    rows: Sequence[Mapping[str, Any]],
    source_format: Union[SourceFormat, str] = SourceFormat.SPREADSHEET,
    headers: Optional[Sequence[Any]] = None,
) -> List[SaleLine]:
    """Normalize sales extract rows"""
    return normalize_rows(rows, SourceKind.SALES, source_format, headers)


def normalize_table(table, kind: Union[SourceKind, str]) -> List[Union[Agreement, SaleLine]]:
    """Normalize a ``RawTable`` read by the ingestion layer"""
    return normalize_rows(table.rows, kind, table.source_format, table.headers)
