"""
Build execution management for the buildjob package.

This module provides the asyncio subprocess runner for the install + build
commands and the managed thread pools backing blocking client calls.
"""

from .build_process import SubprocessRunner
from .thread_pool import ThreadPoolManager, ThreadPoolConfig, ManagedThreadPoolExecutor

__all__ = [
    "SubprocessRunner",
    "ThreadPoolManager",
    "ThreadPoolConfig",
    "ManagedThreadPoolExecutor",
]
