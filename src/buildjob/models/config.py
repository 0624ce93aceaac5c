"""
Configuration data models.

This module contains the configuration structures for the project being
built, the collaborator services, and the job's tunable settings.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class JobSettings:
    """
    Tunable job behaviour, loaded from the optional `config.toml`.
    """

    # Directory the build runs in; wiped at job start and removed at job end.
    output_dir: Path = Path("output")
    # Subdirectory of output_dir whose files are uploaded as artifacts.
    artifact_subdir: str = "dist"
    # Hard wall-clock limit for the install + build subprocess.
    build_timeout_seconds: float = 30 * 60
    # Only variables starting with this prefix are forwarded to the build.
    env_prefix: str = "PROJECT_ENVIRONMENT_"
    # Per-sink bound on log events waiting to be delivered.
    log_queue_size: int = 1000
    # Upper bound on how long teardown waits for pending log events.
    shutdown_flush_timeout: float = 10.0


@dataclass
class ProjectConfig:
    """
    The project being built, loaded from the environment.

    Every field is optional here; presence is checked when the job initializes
    so that all missing fields can be reported together.
    """

    # Unique project reference, also used in artifact destination keys.
    uri: Optional[str] = None
    # Identifier of this deployment; keys every log line and metric row.
    deployment_id: Optional[str] = None
    install_command: Optional[str] = None
    build_command: Optional[str] = None
    # Directory the shell starts in before changing to the output directory.
    root_dir: Optional[str] = None


@dataclass
class StorageConfig:
    """S3 settings for artifact uploads."""

    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    bucket_name: Optional[str] = None
    key_prefix: str = "__outputs"
    max_workers: int = 16


@dataclass
class MessageBusConfig:
    """Kafka settings for publishing build log lines."""

    client_id: Optional[str] = None
    broker: Optional[str] = None
    sasl_username: Optional[str] = None
    sasl_password: Optional[str] = None
    sasl_mechanism: Optional[str] = None
    topic: str = "build-logs"
    ssl_ca_file: Path = Path("ca.pem")
    send_timeout: float = 10.0


@dataclass
class AnalyticsConfig:
    """ClickHouse settings for log events and build metrics."""

    host: Optional[str] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    log_table: str = "log_events"
    metrics_table: str = "build_metrics"


@dataclass
class AppConfig:
    """
    The root configuration object that aggregates all loaded settings.
    """

    job: JobSettings
    project: ProjectConfig
    storage: StorageConfig = field(default_factory=StorageConfig)
    message_bus: MessageBusConfig = field(default_factory=MessageBusConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
