"""
Runtime data models.

This module contains the data structures that live for the duration of a
single build job: the job record itself, forwarded log events, and upload
tasks.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


class JobStatus(Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class LogSeverity(Enum):
    INFO = "INFO"
    ERROR = "ERROR"


class LogSource(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    STATUS = "status"


class ShutdownPhase(Enum):
    IDLE = "idle"
    SHUTTING_DOWN = "shutting_down"
    DONE = "done"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """
    One build attempt, scoped to a single process lifetime.

    The terminal fields (end time, status, failure message) are written once,
    by `finish()`, when teardown runs.
    """

    project_uri: str
    deployment_id: str
    install_command: str
    build_command: str
    project_root: Path
    output_dir: Path

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[JobStatus] = None
    failure_message: Optional[str] = None

    def mark_started(self) -> None:
        self.start_time = utc_now()

    def finish(self, status: JobStatus, failure_message: Optional[str] = None) -> None:
        """
        Record the job's terminal state.

        Raises:
            RuntimeError: If the job has already finished
        """
        if self.status is not None:
            raise RuntimeError(
                f"Job {self.deployment_id} already finished with status {self.status.value}"
            )
        self.end_time = utc_now()
        if self.start_time is None:
            self.start_time = self.end_time
        self.status = status
        self.failure_message = failure_message

    @property
    def is_finished(self) -> bool:
        return self.status is not None

    @property
    def duration_seconds(self) -> int:
        """Whole seconds between start and end (0 until the job has finished)."""
        if self.start_time is None or self.end_time is None:
            return 0
        return int((self.end_time - self.start_time).total_seconds())


@dataclass(frozen=True)
class LogEvent:
    """A unit of build output or status text forwarded to the log sinks."""

    text: str
    severity: LogSeverity = LogSeverity.INFO
    source: LogSource = LogSource.STATUS

    @classmethod
    def status(cls, text: str, severity: LogSeverity = LogSeverity.INFO) -> "LogEvent":
        return cls(text=text, severity=severity, source=LogSource.STATUS)

    @property
    def bus_text(self) -> str:
        """Text published to the message bus; stderr chunks carry an error prefix."""
        if self.source is LogSource.STDERR:
            return f"Error: {self.text}"
        return self.text


@dataclass(frozen=True)
class UploadTask:
    """One artifact file and the storage key it is uploaded to."""

    local_path: Path
    destination_key: str
    content_type: str

    @property
    def file_name(self) -> str:
        return self.local_path.name
