"""
Configuration management and singleton pattern.

This module provides the main configuration loading and management interface,
implementing a singleton pattern to ensure configuration is loaded only once
per process.
"""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from ..models.config import AppConfig
from ..validation import handle_error, ErrorSeverity
from .loader import (
    ANALYTICS_ENV_VARS,
    CONFIG_PATH_ENV_VAR,
    MESSAGE_BUS_ENV_VARS,
    PROJECT_ENV_VARS,
    STORAGE_ENV_VARS,
    load_settings_file,
    read_env_section,
)
from .validators import (
    build_analytics_config,
    build_message_bus_config,
    build_project_config,
    build_storage_config,
    validate_job_settings,
)

logger = logging.getLogger(__name__)

# --- Global Singleton for Configuration ---

# This global variable will hold the single instance of the loaded AppConfig.
_CONFIG: Optional[AppConfig] = None

# Defines the default path to the job settings file, relative to this script's location.
# The BUILDJOB_CONFIG environment variable or set_config_path() override it.
_CONFIG_FILE_PATH = Path(
    os.environ.get(CONFIG_PATH_ENV_VAR)
    or Path(__file__).parent.parent.parent.parent / "conf" / "config.toml"
)


def set_config_path(config_path: Path) -> None:
    """
    Set a custom settings file path.

    Args:
        config_path: Path to the config.toml file

    Note:
        This clears the cached configuration so the next call to
        get_config() reloads from the new path.
    """
    global _CONFIG_FILE_PATH, _CONFIG
    _CONFIG_FILE_PATH = Path(config_path)
    _CONFIG = None
    logger.info(f"Configuration path set to: {config_path}")


def clear_config_cache() -> None:
    """
    Clear the cached configuration, forcing a reload on next access.
    """
    global _CONFIG
    _CONFIG = None
    logger.debug("Configuration cache cleared")


def load_config(config_path: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Load the complete application configuration.

    Job tunables come from the settings file; project and collaborator
    settings come from the environment. When reading the process environment,
    a .env file in the working directory fills in variables that are not
    already set. Required values are not enforced here: the service factory
    and the job controller check them so that every missing value can be
    reported at once.

    Args:
        config_path: Path to config.toml (optional file)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        AppConfig instance

    Raises:
        ValidationError: If a tunable in the settings file is invalid
        tomllib.TOMLDecodeError: If the settings file is malformed
    """
    try:
        if environ is None:
            load_dotenv(Path.cwd() / ".env", override=False)
        settings_data = load_settings_file(config_path)

        app_config = AppConfig(
            job=validate_job_settings(settings_data),
            project=build_project_config(read_env_section(PROJECT_ENV_VARS, environ)),
            storage=build_storage_config(
                read_env_section(STORAGE_ENV_VARS, environ), settings_data
            ),
            message_bus=build_message_bus_config(
                read_env_section(MESSAGE_BUS_ENV_VARS, environ), settings_data
            ),
            analytics=build_analytics_config(
                read_env_section(ANALYTICS_ENV_VARS, environ), settings_data
            ),
        )

        logger.info(
            f"Loaded configuration for deployment {app_config.project.deployment_id or '<unset>'}"
        )
        return app_config

    except Exception as e:
        handle_error(
            error=e,
            context="processing configuration",
            severity=ErrorSeverity.CRITICAL,
            reraise=True,
            logger=logger
        )
        raise


def get_config() -> AppConfig:
    """
    Get the global application configuration, loading it if necessary.

    Returns:
        The singleton AppConfig instance
    """
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config(_CONFIG_FILE_PATH)
    return _CONFIG

