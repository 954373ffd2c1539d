"""
E-Commerce Warehouse Pipeline
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataLakeSettings(BaseSettings):
    """Data Lake Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    lake_path: str = Field(default="./data", description="Data lake root path")
    raw_path: str = Field(default="./data/raw", description="Raw CSV zone path")
    warehouse_path: str = Field(default="./data/warehouse", description="Layer snapshot root path")

    # Snapshots
    retain_snapshots: int = Field(default=3, ge=1, description="Snapshot versions kept per layer")
    csv_delimiter: str = Field(default=",", description="Raw CSV delimiter")
    encoding: str = Field(default="utf8", description="Raw CSV encoding")


class WarehouseSettings(BaseSettings):
    """Business rules shared by the intermediate and mart layers"""

    model_config = SettingsConfigDict(env_prefix="WAREHOUSE_")

    delivered_status: str = Field(default="delivered", description="Order status counted as revenue")
    min_category_orders: int = Field(default=10, ge=0, description="Minimum distinct orders for a category row")
    low_review_threshold: int = Field(default=2, ge=1, le=5, description="Highest score counted as a low review")
    aggregation_workers: int = Field(default=3, ge=1, description="Concurrent aggregators in the intermediate layer")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE", description="Log file path")


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
    )

    # Application
    app_name: str = Field(default="ecommerce-warehouse", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
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


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
