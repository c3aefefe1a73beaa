"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class LendingConfig(BaseSettings):
    """Lending core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LENDING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # memory, json or sqlite
    storage_path: str = "lending.db"
    storage_key: str = "loanPlatformDB"  # Key of the aggregate inside the backend

    # Schedule configuration
    payment_interval_days: int = 30  # Installments are spaced by days, not calendar months

    # Declared applicant data synthesized when the caller does not supply it
    credit_score_min: int = 500
    credit_score_max: int = 699
    income_min: int = 30000
    income_max: int = 79999

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Seed demo users and offers into an empty store on startup
    seed_demo_data: bool = False


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
