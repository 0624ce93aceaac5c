"""
Configuration validation utilities.

This module turns the raw configuration sources into validated dataclasses
and checks that the values a job cannot run without are present.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..models.config import (
    AnalyticsConfig,
    JobSettings,
    MessageBusConfig,
    ProjectConfig,
    StorageConfig,
)
from ..validation import (
    ValidationError,
    validate_env_prefix,
    validate_non_empty_string,
    validate_positive_float,
    validate_positive_integer,
    validate_required_fields,
)
from .loader import (
    ANALYTICS_ENV_VARS,
    MESSAGE_BUS_ENV_VARS,
    PROJECT_ENV_VARS,
    STORAGE_ENV_VARS,
)

logger = logging.getLogger(__name__)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValidationError(f"[{name}] must be a table", field_name=name, value=section)
    return section


def validate_job_settings(settings_data: Dict[str, Any]) -> JobSettings:
    """
    Validate and create JobSettings from the raw `[job]` table.

    Args:
        settings_data: Parsed config.toml contents (may be empty)

    Returns:
        Validated JobSettings instance

    Raises:
        ValidationError: If a tunable has an invalid value
    """
    job_data = _section(settings_data, "job")
    defaults = JobSettings()

    output_dir = validate_non_empty_string(
        job_data.get("output_dir", str(defaults.output_dir)),
        field_name="job.output_dir",
    )
    artifact_subdir = validate_non_empty_string(
        job_data.get("artifact_subdir", defaults.artifact_subdir),
        field_name="job.artifact_subdir",
    )
    if Path(artifact_subdir).is_absolute() or ".." in Path(artifact_subdir).parts:
        raise ValidationError(
            "job.artifact_subdir must be a relative path inside the output directory",
            field_name="job.artifact_subdir",
            value=artifact_subdir,
        )

    build_timeout_seconds = validate_positive_float(
        job_data.get("build_timeout_seconds", defaults.build_timeout_seconds),
        min_value=0.001,
        max_value=24 * 3600.0,  # 1 day maximum
        field_name="job.build_timeout_seconds",
    )

    env_prefix = validate_env_prefix(
        job_data.get("env_prefix", defaults.env_prefix),
        field_name="job.env_prefix",
    )

    log_queue_size = validate_positive_integer(
        job_data.get("log_queue_size", defaults.log_queue_size),
        min_value=1,
        max_value=1_000_000,
        field_name="job.log_queue_size",
    )

    shutdown_flush_timeout = validate_positive_float(
        job_data.get("shutdown_flush_timeout", defaults.shutdown_flush_timeout),
        min_value=0.0,
        max_value=300.0,
        field_name="job.shutdown_flush_timeout",
    )

    return JobSettings(
        output_dir=Path(output_dir),
        artifact_subdir=artifact_subdir,
        build_timeout_seconds=build_timeout_seconds,
        env_prefix=env_prefix,
        log_queue_size=log_queue_size,
        shutdown_flush_timeout=shutdown_flush_timeout,
    )


def build_project_config(env_values: Mapping[str, Optional[str]]) -> ProjectConfig:
    """Create a ProjectConfig from the project environment section."""
    return ProjectConfig(**env_values)


def build_storage_config(env_values: Mapping[str, Optional[str]],
                         settings_data: Dict[str, Any]) -> StorageConfig:
    """Create a StorageConfig from the environment plus the `[storage]` table."""
    table = _section(settings_data, "storage")
    defaults = StorageConfig()
    key_prefix = validate_non_empty_string(
        table.get("key_prefix", defaults.key_prefix), field_name="storage.key_prefix"
    ).strip("/")
    max_workers = validate_positive_integer(
        table.get("max_workers", defaults.max_workers),
        min_value=1,
        max_value=256,
        field_name="storage.max_workers",
    )
    return StorageConfig(key_prefix=key_prefix, max_workers=max_workers, **env_values)


def build_message_bus_config(env_values: Mapping[str, Optional[str]],
                             settings_data: Dict[str, Any]) -> MessageBusConfig:
    """Create a MessageBusConfig from the environment plus the `[message_bus]` table."""
    table = _section(settings_data, "message_bus")
    defaults = MessageBusConfig()
    topic = validate_non_empty_string(
        table.get("topic", defaults.topic), field_name="message_bus.topic"
    )
    ssl_ca_file = validate_non_empty_string(
        table.get("ssl_ca_file", str(defaults.ssl_ca_file)),
        field_name="message_bus.ssl_ca_file",
    )
    send_timeout = validate_positive_float(
        table.get("send_timeout", defaults.send_timeout),
        min_value=0.1,
        max_value=300.0,
        field_name="message_bus.send_timeout",
    )
    return MessageBusConfig(
        topic=topic,
        ssl_ca_file=Path(ssl_ca_file),
        send_timeout=send_timeout,
        **env_values,
    )


def build_analytics_config(env_values: Mapping[str, Optional[str]],
                           settings_data: Dict[str, Any]) -> AnalyticsConfig:
    """Create an AnalyticsConfig from the environment plus the `[analytics]` table."""
    table = _section(settings_data, "analytics")
    defaults = AnalyticsConfig()
    log_table = validate_non_empty_string(
        table.get("log_table", defaults.log_table), field_name="analytics.log_table"
    )
    metrics_table = validate_non_empty_string(
        table.get("metrics_table", defaults.metrics_table),
        field_name="analytics.metrics_table",
    )
    return AnalyticsConfig(log_table=log_table, metrics_table=metrics_table, **env_values)


def _required(config: Any, env_vars: Mapping[str, str], fields) -> Dict[str, Any]:
    return {env_vars[name]: getattr(config, name) for name in fields}


def validate_project_config(project: ProjectConfig) -> None:
    """
    Check that every project setting the job needs is present.

    Raises:
        ValidationError: Listing every missing environment variable
    """
    validate_required_fields(
        _required(project, PROJECT_ENV_VARS, PROJECT_ENV_VARS.keys()),
        context="environment variables",
    )


def validate_storage_config(storage: StorageConfig) -> None:
    """Raises ValidationError listing every missing S3 setting."""
    validate_required_fields(
        _required(storage, STORAGE_ENV_VARS,
                  ("region", "access_key_id", "secret_access_key", "bucket_name")),
        context="storage configuration",
    )


def validate_message_bus_config(message_bus: MessageBusConfig) -> None:
    """Raises ValidationError listing every missing Kafka setting."""
    validate_required_fields(
        _required(message_bus, MESSAGE_BUS_ENV_VARS, ("client_id", "broker")),
        context="message bus configuration",
    )


def validate_analytics_config(analytics: AnalyticsConfig) -> None:
    """Raises ValidationError listing every missing ClickHouse setting."""
    validate_required_fields(
        _required(analytics, ANALYTICS_ENV_VARS, ("host",)),
        context="analytics database configuration",
    )

