"""Configuration management module for the job board notifier."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config, validate_config_file
from .models import (
    AppConfig,
    DeliveryConfig,
    DeliveryMethod,
    LogFormat,
    LogLevel,
    LoggingConfig,
    QueueConfig,
    SchedulerConfig,
    SweepConfig,
)

__all__ = [
    # Main loader functions
    "load_config",
    "parse_app_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "QueueConfig",
    "SchedulerConfig",
    "SweepConfig",
    "DeliveryConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "DeliveryMethod",
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
