"""
Sales Performance Dashboard
Configuration Module
"""
from .settings import DashboardConfig, Settings, get_settings, load_dashboard_config

__all__ = ["DashboardConfig", "Settings", "get_settings", "load_dashboard_config"]
