"""
Configuration package initialization.
"""

from .settings import (
    AnalysisConfig,
    ConfigManager,
    InvalidConfiguration,
    LoggingConfig,
    ProcessingConfig,
    SystemConfig,
    configure_logging,
    load_config,
)

__all__ = [
    "AnalysisConfig",
    "ConfigManager",
    "InvalidConfiguration",
    "LoggingConfig",
    "ProcessingConfig",
    "SystemConfig",
    "configure_logging",
    "load_config",
]
