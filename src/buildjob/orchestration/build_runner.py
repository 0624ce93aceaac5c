"""
Job controller for the orchestration module.

This module contains the JobController, which drives one build job from
configuration validation to teardown by delegating to the specialized
components: the subprocess runner, the artifact uploader, the log forwarder,
the signal handler and the shutdown coordinator.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Awaitable, Callable, List, Mapping, Optional

from ..executor.build_process import SubprocessRunner
from ..models.config import AppConfig
from ..models.results import StepResult
from ..models.runtime import Job, JobStatus, LogSeverity
from ..config.validators import validate_project_config
from ..services.factory import PROCESS_POOL, JobServices
from ..system.commands import prepare_build_environment
from ..validation import (
    BuildJobError,
    InitializationFailed,
    ValidationError,
    describe_error,
)
from .artifact_uploader import ArtifactUploader
from .log_manager import LogForwarder
from .process_manager import ProcessManager
from .shared_state import JobContext
from .shutdown import ShutdownCoordinator
from .signal_handler import SignalHandler

logger = logging.getLogger(__name__)

BuildStep = Callable[[], Awaitable[StepResult]]


class JobController:
    """
    Top-level controller of a single build job.

    Every step of the build sequence returns a StepResult; the first failure
    is reported once and teardown always runs. The controller owns the
    JobContext for the lifetime of the process.
    """

    def __init__(self, config: AppConfig, services: JobServices,
                 context: Optional[JobContext] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the controller.

        Args:
            config: The loaded application configuration
            services: Storage, message bus and analytics collaborators
            context: Pre-built job context (created by initialize() if omitted)
            environ: Ambient environment for the build (defaults to os.environ)
        """
        self.config = config
        self.services = services
        self.context = context
        self.environ = environ

        self.signal_handler = SignalHandler(self.request_shutdown)
        self.forwarder: Optional[LogForwarder] = None
        self.process_manager: Optional[ProcessManager] = None
        self.runner: Optional[SubprocessRunner] = None
        self.uploader: Optional[ArtifactUploader] = None
        self.shutdown_coordinator: Optional[ShutdownCoordinator] = None

        self._main_task: Optional[asyncio.Task] = None

    @property
    def job(self) -> Optional[Job]:
        return self.context.job if self.context is not None else None

    def create_job(self) -> Job:
        """Create the Job record from the validated project configuration."""
        project = self.config.project
        return Job(
            project_uri=project.uri,
            deployment_id=project.deployment_id,
            install_command=project.install_command,
            build_command=project.build_command,
            project_root=Path(project.root_dir),
            output_dir=Path(self.config.job.output_dir).resolve(),
        )

    def _build_components(self) -> None:
        settings = self.config.job
        self.forwarder = LogForwarder(
            self.services.publisher,
            self.services.analytics,
            deployment_id=self.context.job.deployment_id,
            queue_size=settings.log_queue_size,
        )
        self.process_manager = ProcessManager(
            self.services.pool_manager.get_pool(PROCESS_POOL)
        )
        self.runner = SubprocessRunner(
            self.context,
            self.forwarder,
            self.process_manager,
            timeout=settings.build_timeout_seconds,
        )
        self.uploader = ArtifactUploader(
            self.services.storage,
            self.forwarder,
            project_uri=self.context.job.project_uri,
            key_prefix=self.config.storage.key_prefix,
        )
        self.shutdown_coordinator = ShutdownCoordinator(
            self.context,
            self.services.publisher,
            self.services.analytics,
            self.forwarder,
            self.process_manager,
            flush_timeout=settings.shutdown_flush_timeout,
        )

    async def run(self) -> int:
        """
        Execute the entire job lifecycle and return the process exit code.

        Exit code 0 means the build succeeded or was stopped by a signal;
        1 means any failure, including an unhandled asynchronous error.
        """
        self._main_task = asyncio.create_task(self.initialize(), name="build-job")
        exit_code = 1
        try:
            try:
                result = await self._main_task
            except asyncio.CancelledError:
                if self.context is None or not self.context.shutdown_requested:
                    raise
                result = None
            except Exception as e:
                logger.error(f"An error occurred during the run: {e}", exc_info=True)
                error = e if isinstance(e, BuildJobError) else BuildJobError(str(e))
                await self.handle_failure(error)
                result = StepResult.failure(error)

            if result is None:
                exit_code = await self._finish_interrupted()
            elif self.shutdown_coordinator is None:
                # Validation failed before the job existed; nothing to tear down.
                exit_code = 0 if result.ok else 1
            elif result.ok:
                await self.shutdown_coordinator.shutdown(JobStatus.SUCCESS)
                exit_code = 0
            else:
                await self.shutdown_coordinator.shutdown(JobStatus.FAILED, result.message)
                exit_code = 1
        finally:
            self.signal_handler.cleanup_signal_handlers()
            self.services.close()

        logger.info(f"Build job exiting with code {exit_code}")
        return exit_code

    async def _finish_interrupted(self) -> int:
        error = self.context.unhandled_error
        reason = self.context.interrupt_reason or "Build interrupted"
        if error is not None:
            logger.error(f"Unhandled error: {describe_error(error)['stack']}")
        await self.forwarder.emit_status(f"Build failed: {reason}", LogSeverity.ERROR)
        await self.shutdown_coordinator.shutdown(JobStatus.FAILED, reason)
        return 1 if error is not None else 0

    def request_shutdown(self, reason: str, error: Optional[BaseException] = None) -> None:
        """
        Ask the job to stop: the in-flight build step is cancelled and teardown runs.

        Called from the signal handler and the loop exception handler.
        """
        if self.context is None:
            logger.warning(f"Shutdown requested before the job started: {reason}")
            return
        if self.context.shutdown_requested:
            logger.warning("Shutdown already in progress. Please be patient.")
            return

        self.context.shutdown_requested = True
        self.context.interrupt_reason = reason
        self.context.unhandled_error = error
        logger.warning(f"Shutdown requested: {reason}")
        if self._main_task is not None and not self._main_task.done():
            self._main_task.cancel()

    async def initialize(self) -> StepResult:
        """
        Validate configuration, connect the collaborators and run the build.

        Returns:
            The result of the build sequence, or the initialization failure
        """
        try:
            validate_project_config(self.config.project)
        except ValidationError as e:
            logger.error(f"Configuration error: {e.message}")
            return StepResult.failure(e)

        if self.context is None:
            self.context = JobContext(job=self.create_job())
        self._build_components()

        logger.info("Initializing services...")
        try:
            await self.services.analytics.initialize()
            await self.services.publisher.connect()
        except BuildJobError as e:
            await self.handle_failure(e)
            return StepResult.failure(e)

        self.context.job.mark_started()
        self.forwarder.start()
        self.signal_handler.setup_signal_handlers()
        return await self.run_build()

    async def run_build(self) -> StepResult:
        """
        Run the build sequence, stopping at the first failed step.

        Returns:
            Success, or the first step's failure
        """
        steps: List[BuildStep] = [
            self.prepare_output_directory,
            self.announce_start,
            self.execute_build,
            self.upload_artifacts,
            self.announce_success,
        ]
        for step in steps:
            result = await step()
            if not result.ok:
                await self.handle_failure(result.error)
                return result
        return StepResult.success()

    async def handle_failure(self, error: BuildJobError) -> None:
        """Log a failure once and report it to both log sinks."""
        description = describe_error(error)
        logger.error(
            f"Build failed at {description['timestamp']} [{description['code']}] "
            f"{description['name']}: {description['message']} "
            f"details={description['details']}\n{description['stack']}"
        )
        if self.forwarder is not None:
            await self.forwarder.emit_status(f"Build failed: {error.message}", LogSeverity.ERROR)

    async def prepare_output_directory(self) -> StepResult:
        output_dir = self.context.job.output_dir
        try:
            await asyncio.get_running_loop().run_in_executor(None, _recreate_directory, output_dir)
        except OSError as e:
            return StepResult.failure(
                InitializationFailed(
                    "Failed to prepare output directory",
                    details={"originalError": str(e), "path": str(output_dir)},
                )
            )
        logger.info("Output directory prepared")
        return StepResult.success()

    async def announce_start(self) -> StepResult:
        await self.forwarder.emit_status("Build process started")
        return StepResult.success()

    async def execute_build(self) -> StepResult:
        job = self.context.job
        env = prepare_build_environment(self.config.job.env_prefix, self.environ)
        return await self.runner.run(
            job.install_command,
            job.build_command,
            job.project_root,
            job.output_dir,
            env,
        )

    async def upload_artifacts(self) -> StepResult:
        artifact_root = self.context.job.output_dir / self.config.job.artifact_subdir
        return await self.uploader.upload_all(artifact_root)

    async def announce_success(self) -> StepResult:
        await self.forwarder.emit_status("Build completed successfully")
        return StepResult.success()


def _recreate_directory(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)
