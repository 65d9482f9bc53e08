"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class CollectionsConfig(BaseSettings):
    """Collections engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="COLLECTIONS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///collections.db"  # "memory" for in-memory storage

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    currency: str = "MXN"
    late_fee_percent_per_week: str = "5"
    late_fee_max_percent: str = "20"
    late_fee_grace_period_days: int = 0
    reference_annual_rate: str = "0.08"  # Used to price due-date extensions
    target_window_days: int = 4  # Advances due within this many days are targeted

    # Dispatcher configuration
    channel_timeout_seconds: float = 10.0
    max_concurrency: int = 8

    # Outbound gateway configuration
    gateway_url: str = ""  # Empty = log-only channel senders
    gateway_api_key: Optional[str] = None


# Global configuration instance
config = CollectionsConfig()


def get_config() -> CollectionsConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CollectionsConfig:
    """Reload configuration from environment"""
    global config
    config = CollectionsConfig()
    return config
