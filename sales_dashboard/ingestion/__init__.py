"""
Data Ingestion Module
"""
from .readers import RawTable, detect_format, read_table
from .sources import LoadedSources, SourceFailure, SourceFetcher, SourceLoader, SourceUnavailableError

__all__ = [
    "RawTable",
    "detect_format",
    "read_table",
    "LoadedSources",
    "SourceFailure",
    "SourceFetcher",
    "SourceLoader",
    "SourceUnavailableError",
]
