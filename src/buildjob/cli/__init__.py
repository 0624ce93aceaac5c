"""
Command-line interface for the buildjob package.

This module provides the main CLI entry point for the build job.
"""

from .main import main_cli

__all__ = [
    "main_cli",
]
