"""
Validation and error handling for the buildjob package.

This module provides the error taxonomy shared by every component along with
input validation and consistent error reporting.
"""

from .exceptions import (
    AnalyticsDatabaseError,
    BuildErrorCode,
    BuildFailed,
    BuildJobError,
    ErrorSeverity,
    InitializationFailed,
    MessageBusError,
    StorageError,
    UploadFailed,
    ValidationError,
    describe_error,
    handle_cli_error,
    handle_error,
)

from .validators import (
    validate_env_prefix,
    validate_non_empty_string,
    validate_positive_float,
    validate_positive_integer,
    validate_required_fields,
)

__all__ = [
    # Errors
    "AnalyticsDatabaseError",
    "BuildErrorCode",
    "BuildFailed",
    "BuildJobError",
    "ErrorSeverity",
    "InitializationFailed",
    "MessageBusError",
    "StorageError",
    "UploadFailed",
    "ValidationError",
    "describe_error",
    "handle_cli_error",
    "handle_error",
    # Validators
    "validate_env_prefix",
    "validate_non_empty_string",
    "validate_positive_float",
    "validate_positive_integer",
    "validate_required_fields",
]
