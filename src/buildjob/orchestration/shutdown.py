"""
Shutdown coordination for the orchestration module.

This module performs the job's teardown exactly once, whichever path asks
for it first: normal completion, a failed step, a signal or an unhandled
error.
"""

import asyncio
import functools
import logging
import shutil
from typing import Awaitable, Optional

from ..models.runtime import JobStatus, ShutdownPhase
from ..services.base import AnalyticsDatabase, MessagePublisher
from ..validation import handle_error, ErrorSeverity
from .log_manager import LogForwarder
from .process_manager import ProcessManager
from .shared_state import JobContext, TimeoutConstants

logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    """
    Idempotent, failure-isolated teardown of one job.

    Teardown order: pending log events are flushed and a still-running
    build is killed first. Then the metrics write followed by the analytics
    disconnect runs concurrently with the message bus disconnect and the
    removal of the output directory. A failing step is logged and never
    stops the others.
    """

    def __init__(self, context: JobContext, publisher: MessagePublisher,
                 analytics: AnalyticsDatabase, forwarder: LogForwarder,
                 process_manager: ProcessManager,
                 flush_timeout: float = 10.0,
                 disconnect_timeout: float = TimeoutConstants.DISCONNECT_TIMEOUT):
        self.context = context
        self.publisher = publisher
        self.analytics = analytics
        self.forwarder = forwarder
        self.process_manager = process_manager
        self.flush_timeout = flush_timeout
        self.disconnect_timeout = disconnect_timeout

    @property
    def phase(self) -> ShutdownPhase:
        return self.context.shutdown_phase

    async def shutdown(self, status: JobStatus, failure_message: Optional[str] = None) -> bool:
        """
        Run teardown if no other caller has started it.

        Args:
            status: Terminal status recorded on the job
            failure_message: Reason recorded when the job failed

        Returns:
            True if this call performed teardown, False if it was a no-op
        """
        if self.context.shutdown_phase is not ShutdownPhase.IDLE:
            logger.debug("Shutdown already in progress. Ignoring repeated request.")
            return False
        self.context.shutdown_phase = ShutdownPhase.SHUTTING_DOWN
        logger.info("Starting cleanup...")

        try:
            self._finish_job(status, failure_message)

            await self._run_step("flushing log events", self.forwarder.close(self.flush_timeout))
            await self._run_step("terminating build process", self._kill_build_process())

            await asyncio.gather(
                self._record_metrics_and_disconnect(),
                self._run_step(
                    "disconnecting message bus",
                    self.publisher.disconnect(),
                    timeout=self.disconnect_timeout,
                ),
                self._run_step("removing output directory", self._remove_output_dir()),
            )
        finally:
            self.context.shutdown_phase = ShutdownPhase.DONE
            self.context.shutdown_done.set()

        job = self.context.job
        logger.info(f"Cleanup completed. Job finished with status {job.status.value}")
        return True

    def _finish_job(self, status: JobStatus, failure_message: Optional[str]) -> None:
        job = self.context.job
        try:
            job.finish(status, failure_message)
        except RuntimeError as e:
            logger.warning(f"Job terminal state already set: {e}")

    async def _run_step(self, description: str, step: Awaitable,
                        timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(step, timeout=timeout)
            return True
        except Exception as e:
            handle_error(
                error=e,
                context=description,
                severity=ErrorSeverity.ERROR,
                reraise=False,
                logger=logger,
            )
            return False

    async def _kill_build_process(self) -> None:
        process = self.context.process
        if process is None or process.returncode is not None:
            return
        logger.warning(f"Build process {process.pid} still running at shutdown, killing it")
        await self.process_manager.kill_process_tree(process.pid)

    async def _record_metrics_and_disconnect(self) -> None:
        job = self.context.job
        await self._run_step(
            "recording build metrics",
            self.analytics.record_metrics(
                job.deployment_id,
                job.project_uri,
                job.start_time,
                job.end_time,
                job.status.value,
                job.failure_message,
            ),
            timeout=self.disconnect_timeout,
        )
        await self._run_step(
            "disconnecting analytics database",
            self.analytics.disconnect(),
            timeout=self.disconnect_timeout,
        )

    async def _remove_output_dir(self) -> None:
        output_dir = self.context.job.output_dir
        if not output_dir.exists():
            return
        await asyncio.get_running_loop().run_in_executor(
            None, functools.partial(shutil.rmtree, output_dir)
        )
        logger.info(f"Removed output directory {output_dir}")
