"""
Shared data structures for the orchestration module.

This module defines the lifecycle object owned by one job and the timeout
constants used across the orchestration components.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from ..models.runtime import Job, ShutdownPhase


@dataclass
class JobContext:
    """
    Process-lifetime state of a single job.

    The context is created once and injected into the controller and the
    components it drives, instead of living in module globals. It holds the
    job record, the shutdown latch and the live subprocess handle.
    """

    job: Job

    # The build subprocess, set only while the subprocess runner is executing.
    process: Optional[asyncio.subprocess.Process] = None

    # Shutdown latch: IDLE -> SHUTTING_DOWN -> DONE, advanced by the coordinator.
    shutdown_phase: ShutdownPhase = ShutdownPhase.IDLE
    shutdown_done: asyncio.Event = field(default_factory=asyncio.Event)

    # Set when a signal or an unhandled error asks the job to stop early.
    shutdown_requested: bool = False
    interrupt_reason: Optional[str] = None
    unhandled_error: Optional[BaseException] = None

    @property
    def process_alive(self) -> bool:
        return self.process is not None and self.process.returncode is None


class TimeoutConstants:
    """
    Centralized timeout configuration (seconds).
    """
    # Hard deadline for the install + build subprocess
    BUILD_TIMEOUT = 30 * 60

    # Process termination: SIGTERM grace period, then SIGKILL wait
    TERMINATION_GRACEFUL_TIMEOUT = 3
    TERMINATION_FORCE_TIMEOUT = 2

    # Collaborator disconnects during teardown
    DISCONNECT_TIMEOUT = 10.0
