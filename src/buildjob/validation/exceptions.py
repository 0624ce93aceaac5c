"""
Exception types and error handling for the build job.

This module defines the error taxonomy raised by the job's components and the
helpers used to log and describe errors consistently.
"""

import logging
import sys
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for error handling."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class BuildErrorCode(Enum):
    """Machine-readable codes attached to every build job error."""
    INITIALIZATION_FAILED = "INIT_FAILED"
    BUILD_FAILED = "BUILD_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    KAFKA_ERROR = "KAFKA_ERROR"
    S3_ERROR = "S3_ERROR"
    CLICKHOUSE_ERROR = "CLICKHOUSE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class BuildJobError(Exception):
    """
    Base class for all errors raised by the build job.

    Every error carries a code and a free-form details dictionary that is
    included when the error is described for logging and publishing.
    """

    code = BuildErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 code: Optional[BuildErrorCode] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code


class ValidationError(BuildJobError):
    """
    Exception raised when validation fails.

    When several required settings are absent, ``missing_fields`` lists all
    of them in the order they were checked.
    """

    code = BuildErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, severity: ErrorSeverity = ErrorSeverity.ERROR,
                 missing_fields: Optional[List[str]] = None):
        self.field_name = field_name
        self.value = value
        self.severity = severity
        self.missing_fields = list(missing_fields or [])
        details = {"missingVars": self.missing_fields} if self.missing_fields else {}
        super().__init__(message, details=details)


class InitializationFailed(BuildJobError):
    """Raised when the output directory cannot be prepared."""
    code = BuildErrorCode.INITIALIZATION_FAILED


class BuildFailed(BuildJobError):
    """Raised when the build subprocess fails to start, exits non-zero or times out."""

    code = BuildErrorCode.BUILD_FAILED

    @property
    def exit_code(self) -> Optional[int]:
        return self.details.get("exitCode")

    @property
    def stderr(self) -> str:
        return self.details.get("buildErrors", "")

    @property
    def timeout(self) -> bool:
        return bool(self.details.get("timeout", False))


class UploadFailed(BuildJobError):
    """Raised when at least one artifact transfer was rejected."""

    code = BuildErrorCode.UPLOAD_FAILED

    @property
    def file_name(self) -> Optional[str]:
        return self.details.get("file")


class StorageError(BuildJobError):
    code = BuildErrorCode.S3_ERROR


class MessageBusError(BuildJobError):
    code = BuildErrorCode.KAFKA_ERROR


class AnalyticsDatabaseError(BuildJobError):
    code = BuildErrorCode.CLICKHOUSE_ERROR


def handle_error(
    error: Exception,
    context: str,
    severity: Union[ErrorSeverity, str] = ErrorSeverity.ERROR,
    reraise: bool = True,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Handle errors with consistent logging and optional re-raising.

    Args:
        error: The exception that occurred
        context: Context description of where the error occurred
        severity: Severity level for logging
        reraise: Whether to re-raise the exception after logging
        logger: Logger instance to use (defaults to module logger)
    """
    effective_logger = logger or globals()['logger']

    error_msg = f"Error in {context}: {error}"

    if isinstance(severity, str):
        severity_str = severity.lower()
    else:
        severity_str = severity.value

    if severity_str == "debug":
        effective_logger.debug(error_msg, exc_info=True)
    elif severity_str == "info":
        effective_logger.info(error_msg)
    elif severity_str == "warning":
        effective_logger.warning(error_msg)
    elif severity_str == "error":
        effective_logger.error(error_msg)
    elif severity_str == "critical":
        effective_logger.critical(error_msg, exc_info=True)

    if reraise:
        raise error


def handle_cli_error(error: Exception, context: str, exit_code: int = 1,
                     include_traceback: bool = False,
                     logger: Optional[logging.Logger] = None) -> None:
    """Log an error raised before the job started and exit the process."""
    severity = ErrorSeverity.CRITICAL if include_traceback else ErrorSeverity.ERROR
    handle_error(error, f"CLI {context}", severity=severity, reraise=False, logger=logger)
    sys.exit(exit_code)


def describe_error(error: BaseException) -> Dict[str, Any]:
    """
    Build the structured description of an error used for top-level reporting.

    Args:
        error: The exception to describe

    Returns:
        Dictionary with timestamp, name, code, message, details and stack
    """
    code = getattr(error, "code", BuildErrorCode.UNKNOWN_ERROR)
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "name": type(error).__name__,
        "message": str(error),
        "code": code.value if isinstance(code, BuildErrorCode) else str(code),
        "details": getattr(error, "details", {}),
        "stack": "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ),
    }
