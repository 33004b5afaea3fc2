"""
Sample Data Module
"""
from .generators import AgreementGenerator, SalesGenerator, write_sample_sources

__all__ = [
    "AgreementGenerator",
    "SalesGenerator",
    "write_sample_sources",
]
