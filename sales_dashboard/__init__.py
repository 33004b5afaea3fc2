"""
Sales Performance Dashboard

Reconciles customer agreements with sales extracts and keeps the computed
performance result fresh across local and shared caches.
"""

__version__ = "1.0.0"
