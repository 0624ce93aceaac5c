"""
buildjob: disposable build-job runner.

This package runs a single build job per process: it executes a project's
install and build commands, streams the output to Kafka and ClickHouse,
uploads the produced artifacts to S3 and tears everything down cleanly on
success, failure, timeout or signal.

The package is organized into specialized modules:
- config: Configuration loading and validation
- models: Data structures and type definitions
- validation: Error taxonomy and input validation
- system: Build command and environment preparation
- executor: Subprocess execution and thread pools
- services: S3, Kafka and ClickHouse collaborators
- orchestration: Job lifecycle control and teardown
- cli: Command-line interface

Usage:
    From command line:
        buildjob [--config PATH]

    Programmatically:
        from buildjob import JobController, create_services, get_config
        config = get_config()
        controller = JobController(config, create_services(config))
        exit_code = asyncio.run(controller.run())
"""

# Main interfaces
from .config import get_config, clear_config_cache, set_config_path
from .orchestration import JobController
from .services import create_services
from .cli import main_cli

# Model classes for external use
from .models import (
    AppConfig,
    Job,
    JobSettings,
    JobStatus,
    LogEvent,
    ProjectConfig,
    StepResult,
)

# Errors
from .validation import (
    BuildFailed,
    BuildJobError,
    InitializationFailed,
    UploadFailed,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    # Main interfaces
    "get_config",
    "clear_config_cache",
    "set_config_path",
    "JobController",
    "create_services",
    "main_cli",
    # Models
    "AppConfig",
    "Job",
    "JobSettings",
    "JobStatus",
    "LogEvent",
    "ProjectConfig",
    "StepResult",
    # Errors
    "BuildFailed",
    "BuildJobError",
    "InitializationFailed",
    "UploadFailed",
    "ValidationError",
]
