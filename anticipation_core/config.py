"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class AnticipationConfig(BaseSettings):
    """Payment plan engine configuration"""

    # Database configuration
    database_url: str = "sqlite:///antecipa.db"  # sqlite:///<path> or memory://

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_reload: bool = False

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    currency: str = "BRL"
    balance_seed: str = "valor_total"  # valor_total or valor_liquido
    reserve_floor_at_zero: bool = False
    max_receivables_per_attach: int = 500

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "ANTECIPA_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = AnticipationConfig()


def get_config() -> AnticipationConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> AnticipationConfig:
    """Reload configuration from environment"""
    global config
    config = AnticipationConfig()
    return config
