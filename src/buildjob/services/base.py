"""
Abstract base classes for the job's external collaborators.

This module defines the narrow interfaces the job controller talks to:

- BlobStorage: receives the produced artifacts
- MessagePublisher: carries build log lines to live subscribers
- AnalyticsDatabase: stores log lines and the final build metrics

All methods are coroutines. Implementations backed by blocking client
libraries run their calls in a thread pool, so every interaction is a
suspension point of the event loop.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


class BlobStorage(ABC):
    """Abstract base class for artifact storage backends."""

    @abstractmethod
    async def upload(self, local_path: Path, destination_key: str, content_type: str) -> None:
        """
        Upload one local file.

        Args:
            local_path: File to read
            destination_key: Key the object is stored under
            content_type: MIME type recorded with the object

        Raises:
            StorageError: If the transfer is rejected
        """
        pass


class MessagePublisher(ABC):
    """Abstract base class for the message bus carrying build log lines."""

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the producer connection.

        Raises:
            MessageBusError: If the broker cannot be reached
        """
        pass

    @abstractmethod
    async def publish(self, text: str) -> None:
        """
        Publish one log line.

        Raises:
            MessageBusError: If the message is not accepted
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Flush and close the producer. Never raises."""
        pass


class AnalyticsDatabase(ABC):
    """Abstract base class for the analytical store of logs and metrics."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Check connectivity and ensure the required tables exist.

        Raises:
            AnalyticsDatabaseError: If the database is unreachable
        """
        pass

    @abstractmethod
    async def insert_log_line(self, deployment_id: str, text: str, severity: str = "INFO") -> None:
        """Store one log line. Failures are logged, not raised."""
        pass

    @abstractmethod
    async def record_metrics(self, deployment_id: str, project_uri: str,
                             start_time: datetime, end_time: datetime,
                             status: str, error_message: Optional[str] = None) -> None:
        """Store the final metrics row of a job. Failures are logged, not raised."""
        pass

    @abstractmethod
    async def fetch_build_logs(self, deployment_id: str) -> List[Dict[str, Any]]:
        """Return every stored log line of a deployment, oldest first."""
        pass

    @abstractmethod
    async def fetch_build_metrics(self, deployment_id: str) -> List[Dict[str, Any]]:
        """Return the stored metrics row(s) of a deployment."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the client. Never raises."""
        pass
