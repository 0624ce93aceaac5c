"""
Orchestration module for the build job.

Components:
- JobController: drives the job from validation to teardown
- LogForwarder: fans log events out to the console and the remote sinks
- ArtifactUploader: concurrent artifact upload with progress reporting
- ShutdownCoordinator: idempotent, failure-isolated teardown
- ProcessManager: process tree termination
- SignalHandler: SIGTERM/SIGINT and unhandled-error shutdown triggers
- JobContext: the lifecycle state owned by one job
"""

from .artifact_uploader import ArtifactUploader
from .build_runner import JobController
from .log_manager import LogForwarder
from .process_manager import ProcessManager
from .shared_state import JobContext, TimeoutConstants
from .shutdown import ShutdownCoordinator
from .signal_handler import SignalHandler

__all__ = [
    "ArtifactUploader",
    "JobController",
    "LogForwarder",
    "ProcessManager",
    "JobContext",
    "TimeoutConstants",
    "ShutdownCoordinator",
    "SignalHandler",
]
