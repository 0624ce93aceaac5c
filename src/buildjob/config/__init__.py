"""
Configuration management for the buildjob package.

This module provides a clean interface for loading, validating, and accessing
configuration from the environment and the optional TOML settings file, with
singleton pattern management.
"""

# Main configuration interface
from .manager import (
    clear_config_cache,
    get_config,
    load_config,
    set_config_path,
)

# For advanced usage - direct access to loaders and validators
from .loader import (
    load_settings_file,
    load_toml_file,
    read_env_section,
)
from .validators import (
    validate_analytics_config,
    validate_job_settings,
    validate_message_bus_config,
    validate_project_config,
    validate_storage_config,
)

__all__ = [
    # Main interface
    "get_config",
    "load_config",
    "set_config_path",
    "clear_config_cache",
    # Advanced interface
    "load_toml_file",
    "load_settings_file",
    "read_env_section",
    "validate_job_settings",
    "validate_project_config",
    "validate_storage_config",
    "validate_message_bus_config",
    "validate_analytics_config",
]
