"""Configuration management module for the auto-responder."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import build_app_config, load_config, validate_config_file
from .models import (
    AppConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    MaintenanceConfig,
    MatchingConfig,
    QueueConfig,
    ResponderConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "build_app_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "MatchingConfig",
    "QueueConfig",
    "ResponderConfig",
    "MaintenanceConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
