"""
Unit tests for the job controller.

The controller is driven through real shell builds; the storage, message bus
and analytics collaborators are in-memory fakes.
"""

import asyncio
import logging
import os
import re
import signal
import sys
import time

import pytest

from buildjob.models.config import AppConfig, JobSettings, ProjectConfig
from buildjob.models.results import StepResult
from buildjob.models.runtime import JobStatus
from buildjob.orchestration.build_runner import JobController
from buildjob.orchestration.shared_state import JobContext
from buildjob.services.factory import JobServices
from buildjob.validation import BuildFailed, ValidationError

from conftest import FakeAnalytics, FakePublisher, FakeStorage, make_app_config

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")

MAKE_DIST = "mkdir -p dist/assets && echo 'a' > dist/a.js && echo 'b' > dist/b.css"


def failure_lines(analytics):
    return [(text, level) for _, text, level in analytics.log_lines if text.startswith("Build failed")]


@pytest.mark.unit
class TestInitialize:
    """Test cases for JobController.initialize()."""

    @pytest.mark.asyncio
    async def test_missing_configuration_lists_every_field(self, temp_dir, job_services,
                                                           fake_publisher, fake_analytics):
        config = AppConfig(job=JobSettings(output_dir=temp_dir / "output"),
                           project=ProjectConfig(uri="my-site", build_command="npm run build"))
        controller = JobController(config, job_services)

        result = await controller.initialize()

        assert isinstance(result.error, ValidationError)
        assert result.error.missing_fields == [
            "DEPLOYMENT_ID",
            "PROJECT_INSTALL_COMMAND",
            "PROJECT_ROOT_DIR",
        ]
        assert not fake_analytics.initialized
        assert not fake_publisher.connected
        assert controller.job is None

    @pytest.mark.asyncio
    async def test_missing_configuration_exit_code(self, temp_dir, job_services):
        config = AppConfig(job=JobSettings(output_dir=temp_dir / "output"), project=ProjectConfig())
        controller = JobController(config, job_services)

        assert await controller.run() == 1

    @pytest.mark.asyncio
    async def test_collaborator_initialization_failure(self, temp_dir, fake_storage, fake_publisher):
        analytics = FakeAnalytics(fail_initialize=True)
        services = JobServices(fake_storage, fake_publisher, analytics)
        controller = JobController(make_app_config(temp_dir, build_command="touch ran"), services)

        exit_code = await controller.run()

        assert exit_code == 1
        assert not fake_publisher.connected
        assert controller.job.status is JobStatus.FAILED
        assert controller.job.failure_message == "Failed to initialize ClickHouse connection"
        assert not (temp_dir / "output" / "ran").exists()

    @pytest.mark.asyncio
    async def test_message_bus_connect_failure(self, temp_dir, fake_storage, fake_analytics):
        services = JobServices(fake_storage, FakePublisher(fail_connect=True), fake_analytics)
        controller = JobController(make_app_config(temp_dir), services)

        assert await controller.run() == 1
        assert controller.job.failure_message == "Failed to connect to Kafka"
        assert fake_analytics.metrics[0]["status"] == "FAILED"


@pytest.mark.unit
class TestRunBuild:
    """Test cases for the build sequence and its outcomes."""

    @pytest.mark.asyncio
    async def test_successful_job(self, temp_dir, job_services, fake_storage,
                                  fake_publisher, fake_analytics):
        config = make_app_config(temp_dir, install_command="echo installing", build_command=MAKE_DIST)
        controller = JobController(config, job_services)

        exit_code = await controller.run()

        assert exit_code == 0
        job = controller.job
        assert job.status is JobStatus.SUCCESS
        assert job.failure_message is None
        assert sorted(key for _, key, _ in fake_storage.calls) == [
            "__outputs/my-site/a.js",
            "__outputs/my-site/b.css",
        ]
        texts = fake_analytics.texts()
        assert texts[0] == "Build process started"
        assert "installing\n" in "".join(texts)
        assert "Upload progress: 2/2 files" in texts
        assert texts[-1] == "Build completed successfully"
        assert fake_publisher.messages[-1] == "Build completed successfully"
        assert fake_analytics.metrics[0]["status"] == "SUCCESS"
        assert fake_publisher.disconnect_calls == 1
        assert fake_analytics.disconnect_calls == 1
        assert not (temp_dir / "output").exists()

    @pytest.mark.asyncio
    async def test_non_zero_exit_skips_upload(self, temp_dir, job_services, fake_storage, fake_analytics):
        config = make_app_config(temp_dir, build_command=MAKE_DIST + " && echo broken >&2 && exit 2")
        controller = JobController(config, job_services)

        exit_code = await controller.run()

        assert exit_code == 1
        assert fake_storage.calls == []
        assert controller.job.status is JobStatus.FAILED
        assert controller.job.failure_message == "Build process exited with code 2\nbroken\n"
        assert failure_lines(fake_analytics) == [
            ("Build failed: Build process exited with code 2\nbroken\n", "ERROR")
        ]
        assert not (temp_dir / "output").exists()

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_timeout_fails_job(self, temp_dir, job_services, fake_analytics):
        config = make_app_config(temp_dir, build_command="sleep 30", build_timeout_seconds=0.5)
        controller = JobController(config, job_services)

        started = time.monotonic()
        exit_code = await controller.run()

        assert time.monotonic() - started < 15
        assert exit_code == 1
        assert controller.job.failure_message == "Build process timed out"
        assert fake_analytics.metrics[0]["error_message"] == "Build process timed out"

    @pytest.mark.asyncio
    async def test_missing_artifact_directory(self, temp_dir, job_services, fake_analytics):
        controller = JobController(make_app_config(temp_dir, build_command="true"), job_services)

        exit_code = await controller.run()

        assert exit_code == 1
        assert controller.job.failure_message == "Build directory not found"
        assert failure_lines(fake_analytics) == [("Build failed: Build directory not found", "ERROR")]

    @pytest.mark.asyncio
    async def test_upload_failure(self, temp_dir, fake_publisher, fake_analytics):
        storage = FakeStorage(fail_on={"b.css"})
        services = JobServices(storage, fake_publisher, fake_analytics)
        controller = JobController(make_app_config(temp_dir, build_command=MAKE_DIST), services)

        exit_code = await controller.run()

        assert exit_code == 1
        assert storage.completed == ["a.js"]
        assert controller.job.failure_message == "Failed to upload b.css"
        assert "Build completed successfully" not in fake_analytics.texts()

    @pytest.mark.asyncio
    async def test_output_directory_failure(self, temp_dir, job_services):
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        config = make_app_config(temp_dir)
        config.job.output_dir = blocker / "output"
        controller = JobController(config, job_services)

        assert await controller.run() == 1
        assert controller.job.failure_message == "Failed to prepare output directory"

    @pytest.mark.asyncio
    async def test_output_directory_is_wiped_first(self, temp_dir, job_services, fake_storage):
        stale = temp_dir / "output" / "dist"
        stale.mkdir(parents=True)
        (stale / "stale.js").write_text("old")
        controller = JobController(make_app_config(temp_dir, build_command=MAKE_DIST), job_services)

        assert await controller.run() == 0
        assert "stale.js" not in fake_storage.completed

    @pytest.mark.asyncio
    async def test_project_environment_reaches_build(self, temp_dir, job_services, fake_analytics):
        environ = dict(os.environ, PROJECT_ENVIRONMENT_API_URL="https://api.example")
        config = make_app_config(temp_dir, build_command='echo "api=$PROJECT_ENVIRONMENT_API_URL"')
        controller = JobController(config, job_services, environ=environ)

        await controller.run()

        assert "api=https://api.example\n" in fake_analytics.texts()


@pytest.mark.unit
class TestShutdownTriggers:
    """Test cases for signals and unhandled errors during a job."""

    @pytest.mark.asyncio
    async def test_signal_interrupts_build_with_exit_zero(self, temp_dir, job_services, fake_analytics):
        controller = JobController(make_app_config(temp_dir, build_command="sleep 30"), job_services)
        asyncio.get_running_loop().call_later(
            0.5, controller.request_shutdown, "Build interrupted by SIGTERM", None
        )

        started = time.monotonic()
        exit_code = await controller.run()

        assert time.monotonic() - started < 15
        assert exit_code == 0
        assert controller.job.status is JobStatus.FAILED
        assert controller.job.failure_message == "Build interrupted by SIGTERM"
        assert failure_lines(fake_analytics) == [("Build failed: Build interrupted by SIGTERM", "ERROR")]
        assert len(fake_analytics.metrics) == 1
        assert not (temp_dir / "output").exists()

    @pytest.mark.asyncio
    async def test_real_sigterm(self, temp_dir, job_services):
        controller = JobController(make_app_config(temp_dir, build_command="sleep 30"), job_services)
        asyncio.get_running_loop().call_later(0.5, os.kill, os.getpid(), signal.SIGTERM)

        exit_code = await controller.run()

        assert exit_code == 0
        assert controller.job.failure_message == "Build interrupted by SIGTERM"

    @pytest.mark.asyncio
    async def test_unhandled_error_exits_one(self, temp_dir, job_services, fake_analytics):
        controller = JobController(make_app_config(temp_dir, build_command="sleep 30"), job_services)
        loop = asyncio.get_running_loop()
        loop.call_later(
            0.5,
            lambda: loop.call_exception_handler(
                {"message": "Task exception was never retrieved", "exception": RuntimeError("boom")}
            ),
        )

        exit_code = await controller.run()

        assert exit_code == 1
        assert controller.job.failure_message == "Unhandled error: boom"
        assert len(fake_analytics.metrics) == 1

    @pytest.mark.asyncio
    async def test_second_request_is_ignored(self, temp_dir, job_services, fake_analytics, caplog):
        controller = JobController(make_app_config(temp_dir, build_command="sleep 30"), job_services)
        loop = asyncio.get_running_loop()
        loop.call_later(0.5, controller.request_shutdown, "Build interrupted by SIGINT", None)
        loop.call_later(0.7, controller.request_shutdown, "Unhandled error: late", RuntimeError("late"))

        with caplog.at_level(logging.WARNING):
            exit_code = await controller.run()

        assert exit_code == 0
        assert controller.job.failure_message == "Build interrupted by SIGINT"
        assert "Shutdown already in progress" in caplog.text
        assert len(fake_analytics.metrics) == 1
        assert fake_analytics.disconnect_calls == 1

    @pytest.mark.asyncio
    async def test_signal_during_upload_waits_for_transfers(self, temp_dir, fake_publisher, fake_analytics):
        storage = FakeStorage(delays={"a.js": 0.5, "b.css": 0.5})
        services = JobServices(storage, fake_publisher, fake_analytics)
        controller = JobController(make_app_config(temp_dir, build_command=MAKE_DIST), services)

        async def interrupt_when_uploading():
            for _ in range(1000):
                if storage.calls:
                    break
                await asyncio.sleep(0.01)
            controller.request_shutdown("Build interrupted by SIGTERM")

        interrupter = asyncio.create_task(interrupt_when_uploading())
        exit_code = await controller.run()
        await interrupter

        assert exit_code == 0
        assert sorted(storage.completed) == ["a.js", "b.css"]
        assert controller.job.status is JobStatus.FAILED

    def test_request_before_start_is_ignored(self, temp_dir, job_services):
        controller = JobController(make_app_config(temp_dir), job_services)

        controller.request_shutdown("Build interrupted by SIGTERM")

        assert controller.context is None


@pytest.mark.unit
class TestStepResults:
    @pytest.mark.asyncio
    async def test_run_build_stops_at_first_failure(self, temp_dir, job_services):
        controller = JobController(make_app_config(temp_dir), job_services)

        controller.context = JobContext(job=controller.create_job())
        controller._build_components()
        calls = []

        async def ok():
            calls.append("ok")
            return StepResult.success()

        async def fail():
            calls.append("fail")
            return StepResult.failure(BuildFailed("nope"))

        controller.prepare_output_directory = ok
        controller.announce_start = ok
        controller.execute_build = fail
        controller.upload_artifacts = ok

        result = await controller.run_build()

        assert calls == ["ok", "ok", "fail"]
        assert result.message == "nope"
        await controller.forwarder.close()


@pytest.mark.unit
class TestHandleFailure:
    @pytest.mark.asyncio
    async def test_log_includes_timestamp_and_stack(self, temp_dir, job_services, caplog):
        controller = JobController(make_app_config(temp_dir), job_services)
        try:
            raise BuildFailed("Build process exited with code 2", details={"exitCode": 2})
        except BuildFailed as e:
            error = e

        with caplog.at_level(logging.ERROR, logger="buildjob.orchestration.build_runner"):
            await controller.handle_failure(error)

        messages = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Build failed at ")]
        assert len(messages) == 1
        assert re.match(r"Build failed at \d{4}-\d{2}-\d{2}T", messages[0])
        assert "[BUILD_FAILED] BuildFailed: Build process exited with code 2" in messages[0]
        assert "details={'exitCode': 2}" in messages[0]
        assert "Traceback (most recent call last)" in messages[0]
        assert "test_log_includes_timestamp_and_stack" in messages[0]
