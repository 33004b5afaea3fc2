"""
Sales Performance Dashboard
Centralized Configuration Management

Configuration is loaded with Pydantic settings from environment variables
(and an optional .env file). The source layout can additionally be supplied
as a JSON config file using the dashboard's historical keys.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis Shared Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=20, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SourceSettings(BaseSettings):
    """Raw agreement and sales source locations"""

    model_config = SettingsConfigDict(env_prefix="SOURCES_")

    agreement_location: str = Field(
        default="./data/customer_master.csv",
        description="Path or URL of the agreement registry (CSV)",
    )
    sales_folder: str = Field(default="./data/sales", description="Folder or base URL of sales extracts")
    sales_files: List[str] = Field(default=["sales_q1.xlsx"], description="Ordered sales extract file names")
    fetch_timeout_seconds: float = Field(default=30.0, description="Per-source fetch timeout")
    max_parallel_fetches: int = Field(default=4, description="Concurrent sales source fetches")
    config_file: Optional[str] = Field(default=None, description="Optional JSON source config file")


class RefreshSettings(BaseSettings):
    """Refresh coordinator and cache tier configuration"""

    model_config = SettingsConfigDict(env_prefix="REFRESH_")

    auto_refresh_interval_ms: int = Field(default=300_000, description="Periodic refresh interval")
    auto_refresh_enabled: bool = Field(default=True, description="Run periodic refreshes")
    remote_compute_url: Optional[str] = Field(default=None, description="Remote compute-now endpoint")
    remote_timeout_seconds: float = Field(default=60.0, description="Remote compute timeout")
    local_cache_path: str = Field(default="./data/cache/performance.json", description="Local snapshot file")
    shared_namespace: str = Field(default="performance", description="Shared cache key namespace")
    shared_key: str = Field(default="current", description="Shared cache key for the current result")

    @field_validator("auto_refresh_interval_ms")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        """Interval must be positive"""
        if v <= 0:
            raise ValueError("auto_refresh_interval_ms must be > 0")
        return v


class MonitoringSettings(BaseSettings):
    """Logging and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="sales-dashboard", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    redis: RedisSettings = Field(default_factory=RedisSettings)
    sources: SourceSettings = Field(default_factory=SourceSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


class DashboardConfig(BaseModel):
    """
    Source layout and refresh cadence consumed by the refresh pipeline.

    Accepts both the Python field names and the keys of the dashboard's
    ``config.json`` (customerMasterFile, salesDataFolder, salesFiles,
    autoRefreshInterval).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    agreement_source_location: str = Field(
        validation_alias=AliasChoices("customerMasterFile", "agreement_source_location"),
    )
    sales_source_folder: str = Field(
        validation_alias=AliasChoices("salesDataFolder", "sales_source_folder"),
    )
    sales_source_files: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("salesFiles", "sales_source_files"),
    )
    auto_refresh_interval_ms: int = Field(
        default=300_000,
        gt=0,
        validation_alias=AliasChoices("autoRefreshInterval", "auto_refresh_interval_ms"),
    )

    @property
    def auto_refresh_interval_seconds(self) -> float:
        return self.auto_refresh_interval_ms / 1000


def load_dashboard_config(settings: Optional[Settings] = None) -> DashboardConfig:
    """
    Build the dashboard source configuration.

    Values come from ``SourceSettings``/``RefreshSettings``; when
    ``SOURCES_CONFIG_FILE`` points at a JSON file, keys present in that file
    override them.

    Raises:
        FileNotFoundError: If the configured JSON file does not exist
        pydantic.ValidationError: If the merged configuration is invalid
    """
    settings = settings or get_settings()
    values = {
        "agreement_source_location": settings.sources.agreement_location,
        "sales_source_folder": settings.sources.sales_folder,
        "sales_source_files": list(settings.sources.sales_files),
        "auto_refresh_interval_ms": settings.refresh.auto_refresh_interval_ms,
    }

    if settings.sources.config_file:
        path = Path(settings.sources.config_file)
        if not path.exists():
            raise FileNotFoundError(f"Dashboard config file not found: {path}")
        # Original config.json keys win over the settings-derived ones
        return DashboardConfig.model_validate(
            {**values, **json.loads(path.read_text(encoding="utf-8"))}
        )

    return DashboardConfig.model_validate(values)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
