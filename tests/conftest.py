"""
Pytest configuration and shared fixtures for the buildjob test suite.

This module provides common fixtures, in-memory collaborator fakes and
configuration helpers for all test modules.
"""

import asyncio
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from buildjob.executor.thread_pool import ThreadPoolManager  # noqa: E402
from buildjob.models.config import AppConfig, JobSettings, ProjectConfig  # noqa: E402
from buildjob.models.runtime import Job  # noqa: E402
from buildjob.orchestration.shared_state import JobContext  # noqa: E402
from buildjob.services.base import (  # noqa: E402
    AnalyticsDatabase,
    BlobStorage,
    MessagePublisher,
)
from buildjob.services.factory import JobServices  # noqa: E402
from buildjob.validation import (  # noqa: E402
    AnalyticsDatabaseError,
    MessageBusError,
    StorageError,
)


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "e2e: mark test as an end-to-end test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# In-memory collaborators
# ============================================================================


class FakeStorage(BlobStorage):
    """Records uploads; optionally rejects or delays selected files."""

    def __init__(self, fail_on=(), delays: Optional[Dict[str, float]] = None):
        self.fail_on = set(fail_on)
        self.delays = delays or {}
        self.calls: List[tuple] = []
        self.completed: List[str] = []
        self.rejected: List[str] = []

    async def upload(self, local_path, destination_key, content_type):
        name = Path(local_path).name
        self.calls.append((Path(local_path), destination_key, content_type))
        await asyncio.sleep(self.delays.get(name, 0))
        if name in self.fail_on:
            self.rejected.append(name)
            raise StorageError(f"Failed to upload {name}", details={"file": name})
        self.completed.append(name)


class FakePublisher(MessagePublisher):
    """Collects published lines in memory."""

    def __init__(self, fail_connect: bool = False, fail_publish: bool = False):
        self.fail_connect = fail_connect
        self.fail_publish = fail_publish
        self.connected = False
        self.messages: List[str] = []
        self.disconnect_calls = 0

    async def connect(self):
        if self.fail_connect:
            raise MessageBusError("Failed to connect to Kafka")
        self.connected = True

    async def publish(self, text):
        await asyncio.sleep(0)
        if self.fail_publish:
            raise MessageBusError("Failed to publish log")
        self.messages.append(text)

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False


class FakeAnalytics(AnalyticsDatabase):
    """Collects log lines and metrics rows in memory."""

    def __init__(self, fail_initialize: bool = False, fail_metrics: bool = False):
        self.fail_initialize = fail_initialize
        self.fail_metrics = fail_metrics
        self.initialized = False
        self.log_lines: List[tuple] = []
        self.metrics: List[Dict[str, Any]] = []
        self.disconnect_calls = 0

    async def initialize(self):
        if self.fail_initialize:
            raise AnalyticsDatabaseError("Failed to initialize ClickHouse connection")
        self.initialized = True

    async def insert_log_line(self, deployment_id, text, severity="INFO"):
        await asyncio.sleep(0)
        self.log_lines.append((deployment_id, text, severity))

    async def record_metrics(self, deployment_id, project_uri, start_time, end_time,
                             status, error_message=None):
        if self.fail_metrics:
            raise AnalyticsDatabaseError("ClickHouse client not connected")
        self.metrics.append({
            "deployment_id": deployment_id,
            "project_uri": project_uri,
            "start_time": start_time,
            "end_time": end_time,
            "status": status,
            "error_message": error_message,
        })

    async def fetch_build_logs(self, deployment_id):
        return [
            {"deployment_id": d, "log": text, "level": level}
            for d, text, level in self.log_lines
            if d == deployment_id
        ]

    async def fetch_build_metrics(self, deployment_id):
        return [m for m in self.metrics if m["deployment_id"] == deployment_id][:1]

    async def disconnect(self):
        self.disconnect_calls += 1

    def texts(self) -> List[str]:
        return [text for _, text, _ in self.log_lines]


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_publisher():
    return FakePublisher()


@pytest.fixture
def fake_analytics():
    return FakeAnalytics()


@pytest.fixture
def job_services(fake_storage, fake_publisher, fake_analytics):
    """JobServices wired to the in-memory collaborators."""
    services = JobServices(
        storage=fake_storage,
        publisher=fake_publisher,
        analytics=fake_analytics,
        pool_manager=ThreadPoolManager(),
    )
    yield services
    services.close()


@pytest.fixture
def project_env(temp_dir):
    """Environment values of a complete project configuration."""
    return {
        "PROJECT_URI": "my-site",
        "DEPLOYMENT_ID": "dep-123",
        "PROJECT_INSTALL_COMMAND": "true",
        "PROJECT_BUILD_COMMAND": "true",
        "PROJECT_ROOT_DIR": str(temp_dir),
    }


def make_app_config(temp_dir: Path, install_command: str = "true",
                    build_command: str = "true", **job_overrides) -> AppConfig:
    """Build an AppConfig whose output directory lives under temp_dir."""
    return AppConfig(
        job=JobSettings(output_dir=temp_dir / "output", **job_overrides),
        project=ProjectConfig(
            uri="my-site",
            deployment_id="dep-123",
            install_command=install_command,
            build_command=build_command,
            root_dir=str(temp_dir),
        ),
    )


@pytest.fixture
def app_config(temp_dir):
    return make_app_config(temp_dir)


@pytest.fixture
def job(temp_dir):
    return Job(
        project_uri="my-site",
        deployment_id="dep-123",
        install_command="true",
        build_command="true",
        project_root=temp_dir,
        output_dir=temp_dir / "output",
    )


@pytest.fixture
def job_context(job):
    return JobContext(job=job)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_settings_data():
    """Sample config.toml contents for testing."""
    return {
        "job": {
            "output_dir": "build-output",
            "artifact_subdir": "public",
            "build_timeout_seconds": 120,
            "env_prefix": "APP_",
            "log_queue_size": 50,
            "shutdown_flush_timeout": 2.5,
        },
        "storage": {"key_prefix": "/artifacts/", "max_workers": 4},
        "message_bus": {"topic": "logs", "ssl_ca_file": "certs/ca.pem", "send_timeout": 5},
        "analytics": {"log_table": "logs", "metrics_table": "metrics"},
    }


@pytest.fixture
def config_files(temp_dir, sample_settings_data):
    """Create a temporary config.toml for testing."""
    import toml

    config_file = temp_dir / "config.toml"
    with open(config_file, "w") as f:
        toml.dump(sample_settings_data, f)

    return {"config": config_file, "dir": temp_dir}


@pytest.fixture(autouse=True)
def clear_config_after_test():
    """Automatically clear configuration cache after each test."""
    original_config_path = Path(__file__).parent.parent / "conf" / "config.toml"

    yield  # Run the test

    from buildjob.config import clear_config_cache, set_config_path

    clear_config_cache()
    set_config_path(original_config_path)
