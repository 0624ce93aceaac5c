"""
External collaborator services for the build job.

This package provides the interfaces the job controller depends on and
their S3, Kafka and ClickHouse implementations.
"""

from .base import AnalyticsDatabase, BlobStorage, MessagePublisher
from .factory import (
    JobServices,
    create_pool_manager,
    create_services,
    validate_app_config,
    validate_service_configs,
)

__all__ = [
    "AnalyticsDatabase",
    "BlobStorage",
    "MessagePublisher",
    "JobServices",
    "create_pool_manager",
    "create_services",
    "validate_app_config",
    "validate_service_configs",
]
