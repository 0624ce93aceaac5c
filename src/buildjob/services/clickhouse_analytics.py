"""
ClickHouse analytics database for build logs and build metrics.

Two MergeTree tables are used, both ordered by (timestamp, deployment_id):

- log_events: one row per forwarded log line
- build_metrics: one row per finished job with its duration and status

Inserts never fail the job; a lost log line or metrics row is logged and
the build continues.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import clickhouse_connect
from clickhouse_connect.driver.exceptions import ClickHouseError

from ..executor.thread_pool import ManagedThreadPoolExecutor
from ..models.config import AnalyticsConfig
from ..models.runtime import utc_now
from ..validation import AnalyticsDatabaseError
from .base import AnalyticsDatabase

logger = logging.getLogger(__name__)

LOG_EVENTS_DDL = """
    CREATE TABLE IF NOT EXISTS {table} (
        event_id UUID,
        deployment_id String,
        log String,
        timestamp DateTime DEFAULT now(),
        level String DEFAULT 'INFO'
    )
    ENGINE = MergeTree()
    ORDER BY (timestamp, deployment_id)
"""

BUILD_METRICS_DDL = """
    CREATE TABLE IF NOT EXISTS {table} (
        deployment_id String,
        project_uri String,
        start_time DateTime,
        end_time DateTime,
        duration_seconds UInt32,
        status String,
        error_message String DEFAULT '',
        timestamp DateTime DEFAULT now()
    )
    ENGINE = MergeTree()
    ORDER BY (timestamp, deployment_id)
"""

LOG_COLUMNS = ["event_id", "deployment_id", "log", "level", "timestamp"]
METRICS_COLUMNS = [
    "deployment_id", "project_uri", "start_time", "end_time",
    "duration_seconds", "status", "error_message", "timestamp",
]


def create_clickhouse_client(config: AnalyticsConfig):
    return clickhouse_connect.get_client(
        host=config.host,
        username=config.username or "default",
        password=config.password or "",
        database=config.database or "default",
    )


class ClickHouseAnalytics(AnalyticsDatabase):
    """AnalyticsDatabase backed by clickhouse-connect running in a thread pool."""

    def __init__(self, config: AnalyticsConfig, pool: ManagedThreadPoolExecutor,
                 client_factory=create_clickhouse_client):
        self.config = config
        self.pool = pool
        self.client_factory = client_factory
        self.client = None
        self.is_connected = False

    async def initialize(self) -> None:
        try:
            self.client = await self.pool.run_async(self.client_factory, self.config)
            reachable = await self.pool.run_async(self.client.ping)
            if not reachable:
                raise AnalyticsDatabaseError(
                    "Failed to initialize ClickHouse connection",
                    details={"originalError": f"ping to {self.config.host} failed"},
                )
            self.is_connected = True
            logger.info("ClickHouse connection established")
        except (ClickHouseError, OSError) as e:
            raise AnalyticsDatabaseError(
                "Failed to initialize ClickHouse connection",
                details={"originalError": str(e)},
            ) from e

        await self._create_tables_if_not_exist()

    async def _create_tables_if_not_exist(self) -> None:
        try:
            await self.pool.run_async(
                self.client.command, LOG_EVENTS_DDL.format(table=self.config.log_table)
            )
            await self.pool.run_async(
                self.client.command, BUILD_METRICS_DDL.format(table=self.config.metrics_table)
            )
            logger.info("ClickHouse tables verified")
        except ClickHouseError as e:
            raise AnalyticsDatabaseError(
                "Failed to create ClickHouse tables", details={"originalError": str(e)}
            ) from e

    def _require_connection(self) -> None:
        if not self.is_connected:
            raise AnalyticsDatabaseError("ClickHouse client not connected")

    async def insert_log_line(self, deployment_id: str, text: str, severity: str = "INFO") -> None:
        self._require_connection()
        row = [uuid.uuid4(), deployment_id, text, severity, utc_now()]
        try:
            await self.pool.run_async(
                self.client.insert, self.config.log_table, [row], column_names=LOG_COLUMNS
            )
        except Exception as e:
            logger.error(f"Failed to insert build log: {e}")

    async def record_metrics(self, deployment_id: str, project_uri: str,
                             start_time: datetime, end_time: datetime,
                             status: str, error_message: Optional[str] = None) -> None:
        self._require_connection()
        duration_seconds = max(0, int((end_time - start_time).total_seconds()))
        row = [
            deployment_id, project_uri, start_time, end_time,
            duration_seconds, status, error_message or "", utc_now(),
        ]
        try:
            await self.pool.run_async(
                self.client.insert, self.config.metrics_table, [row],
                column_names=METRICS_COLUMNS,
            )
        except Exception as e:
            logger.error(f"Failed to record build metrics: {e}")

    async def fetch_build_logs(self, deployment_id: str) -> List[Dict[str, Any]]:
        query = (
            f"SELECT * FROM {self.config.log_table} "
            "WHERE deployment_id = {deployment_id:String} ORDER BY timestamp ASC"
        )
        return await self._query_rows(query, deployment_id, "Failed to retrieve build logs")

    async def fetch_build_metrics(self, deployment_id: str) -> List[Dict[str, Any]]:
        query = (
            f"SELECT * FROM {self.config.metrics_table} "
            "WHERE deployment_id = {deployment_id:String} LIMIT 1"
        )
        return await self._query_rows(query, deployment_id, "Failed to retrieve build metrics")

    async def _query_rows(self, query: str, deployment_id: str, failure: str) -> List[Dict[str, Any]]:
        self._require_connection()
        try:
            result = await self.pool.run_async(
                self.client.query, query, parameters={"deployment_id": deployment_id}
            )
        except ClickHouseError as e:
            raise AnalyticsDatabaseError(failure, details={"originalError": str(e)}) from e
        return list(result.named_results())

    async def disconnect(self) -> None:
        if not self.is_connected:
            return
        self.is_connected = False
        try:
            await self.pool.run_async(self.client.close)
            logger.info("ClickHouse connection closed")
        except Exception as e:
            logger.error(f"Error disconnecting from ClickHouse: {e}")
