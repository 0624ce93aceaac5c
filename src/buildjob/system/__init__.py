"""
System interaction utilities for the build job.

This module provides the command-line and environment preparation used to
launch the install + build subprocess.
"""

from .commands import (
    get_project_environment,
    prepare_build_command,
    prepare_build_environment,
    prepare_command_with_setup,
)

__all__ = [
    "get_project_environment",
    "prepare_build_command",
    "prepare_build_environment",
    "prepare_command_with_setup",
]
