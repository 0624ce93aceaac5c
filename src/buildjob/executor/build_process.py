"""
Asynchronous subprocess runner for the install + build commands.

This module runs the build in a shell subprocess, tees its stdout and stderr
to the log forwarder while it runs, and enforces the wall-clock build
timeout by killing the whole process tree.
"""

import asyncio
import codecs
import logging
from pathlib import Path
from typing import List, Mapping, Optional

from ..models.results import StepResult
from ..models.runtime import LogEvent, LogSeverity, LogSource
from ..orchestration.log_manager import LogForwarder
from ..orchestration.process_manager import ProcessManager
from ..orchestration.shared_state import JobContext, TimeoutConstants
from ..system.commands import prepare_build_command
from ..validation import BuildFailed

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class SubprocessRunner:
    """
    Runs one install + build invocation and reports its outcome as a StepResult.

    The process is started in a new session so that a timeout or a shutdown
    can kill everything it spawned. The handle is published on the
    JobContext while the process runs.
    """

    def __init__(self, context: JobContext, forwarder: LogForwarder,
                 process_manager: ProcessManager,
                 timeout: float = TimeoutConstants.BUILD_TIMEOUT,
                 chunk_size: int = READ_CHUNK_SIZE):
        """
        Initialize the subprocess runner.

        Args:
            context: Job context receiving the process handle
            forwarder: Destination of every output chunk
            process_manager: Used to kill the process tree
            timeout: Maximum build duration (seconds)
            chunk_size: Maximum bytes read from a pipe at once
        """
        self.context = context
        self.forwarder = forwarder
        self.process_manager = process_manager
        self.timeout = timeout
        self.chunk_size = chunk_size

        self.timed_out = False

    async def run(self, install_command: str, build_command: str, project_root: Path,
                  output_dir: Path, env: Mapping[str, str]) -> StepResult:
        """
        Run the build and wait until its output has been fully forwarded.

        Args:
            install_command: Dependency installation command
            build_command: Artifact build command
            project_root: Directory the shell starts in
            output_dir: Directory the commands run in
            env: Complete environment of the subprocess

        Returns:
            Success if the process exited with code 0, otherwise BuildFailed
        """
        command = prepare_build_command(install_command, build_command, output_dir)
        self.timed_out = False

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=str(project_root),
                env=dict(env),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to start build process: {e}")
            return StepResult.failure(
                BuildFailed(
                    f"Failed to start build process: {e}",
                    details={"originalError": str(e)},
                )
            )

        self.context.process = process
        logger.info(f"Build process started with PID {process.pid}")

        stderr_chunks: List[str] = []
        return_code = None

        try:
            try:
                # The deadline covers the pipes too: a descendant holding them open
                # must not outlive it.
                return_code = await asyncio.wait_for(
                    self._stream_until_exit(process, stderr_chunks), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                self.timed_out = True
                logger.error(f"Build process timed out after {self.timeout} seconds, killing it")
                await asyncio.shield(self._kill_after_timeout(process))
            await self.forwarder.flush()
        except asyncio.CancelledError:
            if process.returncode is None:
                logger.warning("Build step cancelled, terminating build process")
                await asyncio.shield(self.process_manager.kill_process_tree(process.pid))
            raise
        finally:
            self.context.process = None

        if self.timed_out:
            return StepResult.failure(
                BuildFailed(
                    "Build process timed out",
                    details={"timeout": True, "timeoutSeconds": self.timeout},
                )
            )

        if return_code != 0:
            build_errors = "".join(stderr_chunks)
            logger.error(f"Build process exited with code {return_code}")
            return StepResult.failure(
                BuildFailed(
                    f"Build process exited with code {return_code}\n{build_errors}",
                    details={"exitCode": return_code, "buildErrors": build_errors},
                )
            )

        logger.info("Build process exited with code 0")
        return StepResult.success()

    async def _stream_until_exit(self, process: asyncio.subprocess.Process,
                                 stderr_chunks: List[str]) -> int:
        await asyncio.gather(
            self._pump(process.stdout, LogSource.STDOUT),
            self._pump(process.stderr, LogSource.STDERR, stderr_chunks),
        )
        return await process.wait()

    async def _kill_after_timeout(self, process: asyncio.subprocess.Process) -> None:
        """Kill the tree and its process group, then stop reading the pipes."""
        # Runs even when the shell has exited: its process group may still be alive.
        await self.process_manager.kill_process_tree(process.pid)
        # asyncio has no public way to close a subprocess's pipes.
        transport = getattr(process, "_transport", None)
        if transport is not None:
            transport.close()

    async def _pump(self, stream: asyncio.StreamReader, source: LogSource,
                    collected: Optional[List[str]] = None) -> None:
        severity = LogSeverity.ERROR if source is LogSource.STDERR else LogSeverity.INFO
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while True:
            chunk = await stream.read(self.chunk_size)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                if collected is not None:
                    collected.append(text)
                await self.forwarder.emit(LogEvent(text=text, severity=severity, source=source))
            if not chunk:
                break
