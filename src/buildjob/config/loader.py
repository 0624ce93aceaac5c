"""
Configuration source loading utilities.

This module handles the low-level reading of the two configuration sources:
the optional `config.toml` file with job tunables, and the process
environment with project and collaborator settings.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..validation import handle_error, ErrorSeverity

logger = logging.getLogger(__name__)

# Environment variable names, grouped by the configuration section they feed.
PROJECT_ENV_VARS = {
    "uri": "PROJECT_URI",
    "deployment_id": "DEPLOYMENT_ID",
    "install_command": "PROJECT_INSTALL_COMMAND",
    "build_command": "PROJECT_BUILD_COMMAND",
    "root_dir": "PROJECT_ROOT_DIR",
}

STORAGE_ENV_VARS = {
    "region": "AWS_REGION",
    "access_key_id": "AWS_ACCESS_KEY_ID",
    "secret_access_key": "AWS_SECRET_ACCESS_KEY",
    "bucket_name": "S3_BUCKET_NAME",
}

MESSAGE_BUS_ENV_VARS = {
    "client_id": "KAFKA_CLIENT_ID",
    "broker": "KAFKA_BROKER",
    "sasl_username": "SASL_USERNAME",
    "sasl_password": "SASL_PASSWORD",
    "sasl_mechanism": "SASL_MECHANISM",
}

ANALYTICS_ENV_VARS = {
    "host": "CLICKHOUSE_HOST",
    "database": "CLICKHOUSE_DB",
    "username": "CLICKHOUSE_USER",
    "password": "CLICKHOUSE_PASSWORD",
}

CONFIG_PATH_ENV_VAR = "BUILDJOB_CONFIG"


def load_toml_file(file_path: Path, description: str = "configuration file") -> Dict[str, Any]:
    """
    Load and parse a TOML file with error handling.

    Args:
        file_path: Path to the TOML file to load
        description: Human-readable description for error messages

    Returns:
        Parsed TOML data as a dictionary

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the file is malformed
    """
    logger.info(f"Loading {description} from: {file_path}")

    if not file_path.exists():
        logger.error(f"{description} not found: {file_path}")
        raise FileNotFoundError(f"{description} not found: {file_path}")

    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        handle_error(
            error=e,
            context=f"parsing {description}",
            severity=ErrorSeverity.CRITICAL,
            reraise=True,
            logger=logger
        )
        raise


def load_settings_file(config_path: Optional[Path]) -> Dict[str, Any]:
    """
    Load the job tunables file if there is one.

    The file is optional: every tunable has a default, so a missing file
    yields an empty dictionary.

    Args:
        config_path: Path to config.toml, or None to skip the file

    Returns:
        Parsed TOML data, or an empty dictionary
    """
    if config_path is None or not config_path.exists():
        logger.info(f"No settings file at {config_path}; using default job settings")
        return {}
    return load_toml_file(config_path, "job settings file")


def read_env_section(env_vars: Mapping[str, str],
                     environ: Optional[Mapping[str, str]] = None) -> Dict[str, Optional[str]]:
    """
    Read one group of environment variables.

    Args:
        env_vars: Mapping of config field name to environment variable name
        environ: Environment to read from (defaults to os.environ)

    Returns:
        Mapping of config field name to value, None where unset or empty
    """
    source = os.environ if environ is None else environ
    return {field: (source.get(var) or None) for field, var in env_vars.items()}
