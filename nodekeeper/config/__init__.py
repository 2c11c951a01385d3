"""
Configuration system with Pydantic validation.

Single source of truth for all node startup parameters.
"""

from .schema import (
    NodeConfig,
    LoggerConfig,
    MetricsConfig,
    NetworkConfig,
    RuntimeConfig,
    LogLevel,
)

from .loader import (
    ConfigLoader,
    load_config,
)

from .validator import (
    ConfigError,
    ValidationResult,
    config_hash,
    validate_config,
)

__all__ = [
    "NodeConfig",
    "LoggerConfig",
    "MetricsConfig",
    "NetworkConfig",
    "RuntimeConfig",
    "LogLevel",
    "ConfigLoader",
    "load_config",
    "ConfigError",
    "ValidationResult",
    "config_hash",
    "validate_config",
]
