"""Configuration management for chorus.

This module provides configuration loading, validation, and feature flag
management for the dialogue scheduler.
"""

from chorus.utils.errors import ConfigError

from .config import (
    Config,
    DialogueConfig,
    FeatureFlags,
    LLMSettings,
    LoggingConfig,
    MetricsConfig,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from .environment import Environment, get_config_file_path, get_environment

__all__ = [
    "Config",
    "ConfigError",
    "DialogueConfig",
    "Environment",
    "FeatureFlags",
    "LLMSettings",
    "LoggingConfig",
    "MetricsConfig",
    "get_config_file_path",
    "get_environment",
    "load_config",
    "load_config_from_env",
    "load_config_from_file",
    "validate_config",
]
