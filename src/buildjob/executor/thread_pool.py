"""
Thread pool management for blocking collaborator calls.

The job itself runs on a single asyncio event loop. The S3, Kafka and
ClickHouse clients and psutil process termination are blocking, so each of
them is given a named thread pool and called through `run_async`, which
turns every interaction into a suspension point of the event loop.
"""

import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from ..validation import handle_error, ErrorSeverity

logger = logging.getLogger(__name__)


@dataclass
class ThreadPoolConfig:
    """Configuration for one managed thread pool."""

    max_workers: int = 4
    thread_name_prefix: str = "JobWorker"
    shutdown_timeout: float = 10.0


class ManagedThreadPoolExecutor:
    """
    ThreadPoolExecutor wrapper with lifecycle checks and usage statistics.

    This class provides:
    - Explicit start/shutdown with guards against double use
    - Awaitable submission from the event loop via `run_async`
    - Thread-safe task statistics
    """

    def __init__(self, config: ThreadPoolConfig):
        """
        Initialize the managed thread pool executor.

        Args:
            config: Thread pool configuration
        """
        self.config = config
        self.executor: Optional[ThreadPoolExecutor] = None
        self.active_futures: Set[Future] = set()
        self.is_shutdown = False
        self._lock = threading.Lock()

        self.stats = {
            "tasks_submitted": 0,
            "tasks_completed": 0,
            "tasks_failed": 0,
        }

    def start(self) -> None:
        """
        Start the thread pool executor.

        Raises:
            RuntimeError: If already started
        """
        if self.executor is not None:
            raise RuntimeError("Thread pool already started")

        self.executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=self.config.thread_name_prefix,
        )
        self.is_shutdown = False
        logger.debug(
            f"Started thread pool '{self.config.thread_name_prefix}' "
            f"with {self.config.max_workers} workers"
        )

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        """
        Submit a task to the thread pool.

        Args:
            fn: Function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Future representing the task

        Raises:
            RuntimeError: If executor is not started or is shutdown
        """
        if self.executor is None:
            raise RuntimeError("Thread pool not started")
        if self.is_shutdown:
            raise RuntimeError("Thread pool is shutdown")

        with self._lock:
            self.stats["tasks_submitted"] += 1

        future = self.executor.submit(fn, *args, **kwargs)
        with self._lock:
            self.active_futures.add(future)
        future.add_done_callback(self._task_completed)
        return future

    async def run_async(self, fn: Callable, *args, **kwargs) -> Any:
        """
        Run a blocking function in this pool and await its result.

        Args:
            fn: Function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            The function's return value (its exception is re-raised)
        """
        if self.executor is None:
            self.start()
        future = self.submit(functools.partial(fn, *args, **kwargs))
        return await asyncio.wrap_future(future)

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """
        Shutdown the thread pool executor.

        Args:
            wait: Whether to wait for running tasks to finish
            cancel_futures: Whether to cancel tasks that have not started
        """
        if self.executor is None or self.is_shutdown:
            return

        try:
            self.is_shutdown = True
            self.executor.shutdown(wait=wait, cancel_futures=cancel_futures)
            logger.debug(f"Thread pool '{self.config.thread_name_prefix}' shutdown completed")
        except Exception as e:
            handle_error(
                error=e,
                context="shutting down thread pool",
                severity=ErrorSeverity.WARNING,
                reraise=False,
                logger=logger,
            )
        finally:
            self.executor = None
            with self._lock:
                self.active_futures.clear()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get current thread pool statistics.

        Returns:
            Dictionary containing usage statistics
        """
        with self._lock:
            stats = self.stats.copy()
            stats["active_futures"] = len(self.active_futures)

        stats["is_shutdown"] = self.is_shutdown
        return stats

    def _task_completed(self, future: Future) -> None:
        with self._lock:
            self.active_futures.discard(future)

            if future.cancelled():
                pass
            elif future.exception() is not None:
                self.stats["tasks_failed"] += 1
            else:
                self.stats["tasks_completed"] += 1

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)


class ThreadPoolManager:
    """
    Registry of the named thread pools used by one job.

    Pools are created on first use so that a collaborator that is never
    called never starts threads.
    """

    def __init__(self, configs: Optional[Dict[str, ThreadPoolConfig]] = None):
        self.configs: Dict[str, ThreadPoolConfig] = dict(configs or {})
        self.pools: Dict[str, ManagedThreadPoolExecutor] = {}
        self._lock = threading.Lock()

    def get_pool(self, pool_name: str) -> ManagedThreadPoolExecutor:
        """
        Get a thread pool by name, starting it if necessary.

        Args:
            pool_name: Name of the pool to retrieve

        Returns:
            The started thread pool
        """
        with self._lock:
            pool = self.pools.get(pool_name)
            if pool is None:
                config = self.configs.get(pool_name) or ThreadPoolConfig(
                    thread_name_prefix=f"{pool_name}-worker"
                )
                pool = ManagedThreadPoolExecutor(config)
                pool.start()
                self.pools[pool_name] = pool
                logger.debug(f"Initialized thread pool '{pool_name}' with {config.max_workers} workers")
            return pool

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get statistics for all thread pools, keyed by pool name."""
        with self._lock:
            pools = dict(self.pools)
        return {name: pool.get_stats() for name, pool in pools.items()}

    def shutdown_all(self, wait: bool = True) -> None:
        """
        Shutdown every pool, isolating failures per pool.

        Args:
            wait: Whether to wait for running tasks to finish
        """
        with self._lock:
            pools = dict(self.pools)
            self.pools.clear()

        for name, pool in pools.items():
            try:
                pool.shutdown(wait=wait, cancel_futures=not wait)
            except Exception as e:
                logger.warning(f"Error shutting down thread pool '{name}': {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown_all(wait=True)
