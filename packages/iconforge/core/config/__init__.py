"""Configuration loading and models."""

from iconforge.core.config.loader import (
    configure_logging,
    detect_format,
    load_app_config,
    load_config,
)
from iconforge.core.config.models import (
    AppConfig,
    GenerationConfig,
    ImagingConfig,
    LoggingConfig,
    ProgressConfig,
    ProviderConfig,
    ProviderKind,
    SettlementPolicy,
    StorageConfig,
)

__all__ = [
    "AppConfig",
    "GenerationConfig",
    "ImagingConfig",
    "LoggingConfig",
    "ProgressConfig",
    "ProviderConfig",
    "ProviderKind",
    "SettlementPolicy",
    "StorageConfig",
    "configure_logging",
    "detect_format",
    "load_app_config",
    "load_config",
]
