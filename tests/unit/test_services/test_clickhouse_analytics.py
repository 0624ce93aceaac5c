"""
Unit tests for the ClickHouse analytics database.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
from clickhouse_connect.driver.exceptions import ClickHouseError

from buildjob.executor.thread_pool import ManagedThreadPoolExecutor, ThreadPoolConfig
from buildjob.models.config import AnalyticsConfig
from buildjob.services.clickhouse_analytics import (
    LOG_COLUMNS,
    METRICS_COLUMNS,
    ClickHouseAnalytics,
    create_clickhouse_client,
)
from buildjob.validation import AnalyticsDatabaseError


@pytest.fixture
def pool():
    executor = ManagedThreadPoolExecutor(ThreadPoolConfig(max_workers=2))
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def analytics_config():
    return AnalyticsConfig(host="clickhouse.local", database="builds")


@pytest.fixture
def client():
    client = Mock()
    client.ping.return_value = True
    return client


async def connected(config, pool, client):
    analytics = ClickHouseAnalytics(config, pool, client_factory=Mock(return_value=client))
    await analytics.initialize()
    return analytics


@pytest.mark.unit
class TestInitialize:
    """Test cases for ClickHouseAnalytics.initialize()."""

    @pytest.mark.asyncio
    async def test_creates_both_tables(self, analytics_config, pool, client):
        analytics = await connected(analytics_config, pool, client)

        assert analytics.is_connected
        statements = [call.args[0] for call in client.command.call_args_list]
        assert len(statements) == 2
        assert "CREATE TABLE IF NOT EXISTS log_events" in statements[0]
        assert "CREATE TABLE IF NOT EXISTS build_metrics" in statements[1]
        assert all("ORDER BY (timestamp, deployment_id)" in s for s in statements)

    @pytest.mark.asyncio
    async def test_failed_ping(self, analytics_config, pool, client):
        client.ping.return_value = False
        analytics = ClickHouseAnalytics(analytics_config, pool, client_factory=Mock(return_value=client))

        with pytest.raises(AnalyticsDatabaseError, match="Failed to initialize ClickHouse connection"):
            await analytics.initialize()
        assert not analytics.is_connected
        client.command.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable_server(self, analytics_config, pool):
        factory = Mock(side_effect=ConnectionRefusedError("connection refused"))
        analytics = ClickHouseAnalytics(analytics_config, pool, client_factory=factory)

        with pytest.raises(AnalyticsDatabaseError) as exc_info:
            await analytics.initialize()
        assert "connection refused" in exc_info.value.details["originalError"]

    @pytest.mark.asyncio
    async def test_table_creation_failure(self, analytics_config, pool, client):
        client.command.side_effect = ClickHouseError("no permission")
        analytics = ClickHouseAnalytics(analytics_config, pool, client_factory=Mock(return_value=client))

        with pytest.raises(AnalyticsDatabaseError, match="Failed to create ClickHouse tables"):
            await analytics.initialize()

    def test_client_defaults(self):
        with patch("buildjob.services.clickhouse_analytics.clickhouse_connect.get_client") as get_client:
            create_clickhouse_client(AnalyticsConfig(host="ch"))

        get_client.assert_called_once_with(
            host="ch", username="default", password="", database="default"
        )


@pytest.mark.unit
class TestWrites:
    """Test cases for log line and metrics inserts."""

    @pytest.mark.asyncio
    async def test_insert_log_line(self, analytics_config, pool, client):
        analytics = await connected(analytics_config, pool, client)

        await analytics.insert_log_line("dep-123", "compiling\n", "ERROR")

        table, rows = client.insert.call_args.args
        assert table == "log_events"
        assert client.insert.call_args.kwargs["column_names"] == LOG_COLUMNS
        event_id, deployment_id, text, level, timestamp = rows[0]
        assert (deployment_id, text, level) == ("dep-123", "compiling\n", "ERROR")
        assert timestamp.tzinfo is not None
        assert event_id is not None

    @pytest.mark.asyncio
    async def test_insert_failure_is_logged_not_raised(self, analytics_config, pool, client, caplog):
        analytics = await connected(analytics_config, pool, client)
        client.insert.side_effect = ClickHouseError("too many parts")

        await analytics.insert_log_line("dep-123", "line")

        assert "Failed to insert build log" in caplog.text

    @pytest.mark.asyncio
    async def test_insert_requires_connection(self, analytics_config, pool):
        analytics = ClickHouseAnalytics(analytics_config, pool)

        with pytest.raises(AnalyticsDatabaseError, match="ClickHouse client not connected"):
            await analytics.insert_log_line("dep-123", "line")

    @pytest.mark.asyncio
    async def test_record_metrics(self, analytics_config, pool, client):
        analytics = await connected(analytics_config, pool, client)
        start = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
        end = start + timedelta(seconds=61, milliseconds=700)

        await analytics.record_metrics("dep-123", "my-site", start, end, "FAILED",
                                       "Build process timed out")

        table, rows = client.insert.call_args.args
        assert table == "build_metrics"
        assert client.insert.call_args.kwargs["column_names"] == METRICS_COLUMNS
        row = dict(zip(METRICS_COLUMNS, rows[0]))
        assert row["duration_seconds"] == 61
        assert row["status"] == "FAILED"
        assert row["error_message"] == "Build process timed out"

    @pytest.mark.asyncio
    async def test_record_metrics_success_has_empty_error(self, analytics_config, pool, client):
        analytics = await connected(analytics_config, pool, client)
        now = datetime.now(timezone.utc)

        await analytics.record_metrics("dep-123", "my-site", now, now, "SUCCESS")

        row = dict(zip(METRICS_COLUMNS, client.insert.call_args.args[1][0]))
        assert row["error_message"] == ""
        assert row["duration_seconds"] == 0


@pytest.mark.unit
class TestQueriesAndDisconnect:
    """Test cases for the read queries and disconnect()."""

    @pytest.mark.asyncio
    async def test_fetch_build_logs(self, analytics_config, pool, client):
        analytics = await connected(analytics_config, pool, client)
        client.query.return_value.named_results.return_value = iter(
            [{"deployment_id": "dep-123", "log": "a"}, {"deployment_id": "dep-123", "log": "b"}]
        )

        rows = await analytics.fetch_build_logs("dep-123")

        assert [row["log"] for row in rows] == ["a", "b"]
        query = client.query.call_args.args[0]
        assert "FROM log_events" in query
        assert "{deployment_id:String}" in query
        assert client.query.call_args.kwargs["parameters"] == {"deployment_id": "dep-123"}

    @pytest.mark.asyncio
    async def test_fetch_build_metrics_failure(self, analytics_config, pool, client):
        analytics = await connected(analytics_config, pool, client)
        client.query.side_effect = ClickHouseError("unknown table")

        with pytest.raises(AnalyticsDatabaseError, match="Failed to retrieve build metrics"):
            await analytics.fetch_build_metrics("dep-123")

    @pytest.mark.asyncio
    async def test_disconnect(self, analytics_config, pool, client):
        analytics = await connected(analytics_config, pool, client)
        client.close.side_effect = OSError("reset")

        await analytics.disconnect()
        await analytics.disconnect()

        client.close.assert_called_once()
        assert not analytics.is_connected
