"""
Data models for the build job.

Configuration Models:
- Job tunables loaded from `config.toml`
- Project and collaborator settings loaded from the environment

Runtime Models:
- The Job record and its terminal status
- Log events forwarded to the console, message bus and analytics database
- Upload tasks for produced artifacts

Result Models:
- Explicit step results threaded through the build sequence
"""

# Configuration models
from .config import (
    AnalyticsConfig,
    AppConfig,
    JobSettings,
    MessageBusConfig,
    ProjectConfig,
    StorageConfig,
)

# Runtime models
from .runtime import (
    Job,
    JobStatus,
    LogEvent,
    LogSeverity,
    LogSource,
    ShutdownPhase,
    UploadTask,
)

# Result models
from .results import StepResult

__all__ = [
    # Configuration
    "AnalyticsConfig",
    "AppConfig",
    "JobSettings",
    "MessageBusConfig",
    "ProjectConfig",
    "StorageConfig",
    # Runtime
    "Job",
    "JobStatus",
    "LogEvent",
    "LogSeverity",
    "LogSource",
    "ShutdownPhase",
    "UploadTask",
    # Results
    "StepResult",
]
