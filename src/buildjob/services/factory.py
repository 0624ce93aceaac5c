"""
Factory for creating the job's collaborator services.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config.validators import (
    validate_analytics_config,
    validate_message_bus_config,
    validate_project_config,
    validate_storage_config,
)
from ..executor.thread_pool import ThreadPoolConfig, ThreadPoolManager
from ..models.config import AppConfig
from ..validation import ValidationError
from .base import AnalyticsDatabase, BlobStorage, MessagePublisher
from .clickhouse_analytics import ClickHouseAnalytics
from .kafka_publisher import KafkaPublisher
from .s3_storage import S3Storage

logger = logging.getLogger(__name__)

STORAGE_POOL = "storage"
MESSAGE_BUS_POOL = "message_bus"
ANALYTICS_POOL = "analytics"
PROCESS_POOL = "process"


@dataclass
class JobServices:
    """The collaborators of one job and the thread pools backing them."""

    storage: BlobStorage
    publisher: MessagePublisher
    analytics: AnalyticsDatabase
    pool_manager: ThreadPoolManager = field(default_factory=ThreadPoolManager)

    def close(self) -> None:
        """Release the thread pools. Pending client calls are abandoned."""
        for name, stats in self.pool_manager.get_all_stats().items():
            logger.debug(f"Thread pool '{name}' stats: {stats}")
        self.pool_manager.shutdown_all(wait=False)


def create_pool_manager(config: AppConfig) -> ThreadPoolManager:
    """Create the named thread pools used by the collaborators and process termination."""
    return ThreadPoolManager({
        STORAGE_POOL: ThreadPoolConfig(
            max_workers=config.storage.max_workers, thread_name_prefix="S3Upload"
        ),
        # One worker keeps published lines in order.
        MESSAGE_BUS_POOL: ThreadPoolConfig(max_workers=1, thread_name_prefix="KafkaPublish"),
        ANALYTICS_POOL: ThreadPoolConfig(max_workers=2, thread_name_prefix="ClickHouse"),
        PROCESS_POOL: ThreadPoolConfig(max_workers=1, thread_name_prefix="ProcessKill"),
    })


def _collect_missing(checks) -> List[str]:
    missing: List[str] = []
    for validate, section in checks:
        try:
            validate(section)
        except ValidationError as e:
            missing.extend(e.missing_fields)
    return missing


def _service_checks(config: AppConfig):
    return [
        (validate_storage_config, config.storage),
        (validate_message_bus_config, config.message_bus),
        (validate_analytics_config, config.analytics),
    ]


def validate_service_configs(config: AppConfig) -> None:
    """
    Check the settings of every collaborator.

    Raises:
        ValidationError: Listing every missing variable across all services
    """
    missing = _collect_missing(_service_checks(config))
    if missing:
        raise ValidationError(
            f"Missing required service configuration: {', '.join(missing)}",
            missing_fields=missing,
        )


def validate_app_config(config: AppConfig) -> None:
    """
    Check the project settings and the settings of every collaborator at once.

    Raises:
        ValidationError: Listing every missing variable, project settings first
    """
    checks = [(validate_project_config, config.project)] + _service_checks(config)
    missing = _collect_missing(checks)
    if missing:
        raise ValidationError(
            f"Missing required configuration: {', '.join(missing)}",
            missing_fields=missing,
        )


def create_services(config: AppConfig,
                    pool_manager: Optional[ThreadPoolManager] = None) -> JobServices:
    """
    Create the S3, Kafka and ClickHouse collaborators for a job.

    Args:
        config: The loaded application configuration
        pool_manager: Thread pools to run the clients in (created if omitted)

    Returns:
        JobServices bundling the collaborators

    Raises:
        ValidationError: If any project or collaborator setting is missing
    """
    validate_app_config(config)

    pools = pool_manager or create_pool_manager(config)
    services = JobServices(
        storage=S3Storage(config.storage, pools.get_pool(STORAGE_POOL)),
        publisher=KafkaPublisher(
            config.message_bus,
            project_uri=config.project.uri or "",
            deployment_id=config.project.deployment_id or "",
            pool=pools.get_pool(MESSAGE_BUS_POOL),
        ),
        analytics=ClickHouseAnalytics(config.analytics, pools.get_pool(ANALYTICS_POOL)),
        pool_manager=pools,
    )
    logger.debug("Created S3, Kafka and ClickHouse services")
    return services
