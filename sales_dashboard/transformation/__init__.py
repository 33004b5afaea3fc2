"""
Data Transformation Module
"""
from .aggregator import AggregateOutput, aggregate, compute_result
from .models import Agreement, CachedResult, Performance, ProductBreakdown, SaleLine, Summary
from .normalizers import SourceFormat, SourceKind, normalize_rows, normalize_table

__all__ = [
    "AggregateOutput",
    "aggregate",
    "compute_result",
    "Agreement",
    "CachedResult",
    "Performance",
    "ProductBreakdown",
    "SaleLine",
    "Summary",
    "SourceFormat",
    "SourceKind",
    "normalize_rows",
    "normalize_table",
]
