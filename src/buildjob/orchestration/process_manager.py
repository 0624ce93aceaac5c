"""
Process termination for the orchestration module.

This module kills the build subprocess together with every process it
spawned, which is what a timeout or a shutdown request requires: killing only
the shell would leave the package manager or compiler running.
"""

import asyncio
import logging
import os
import signal
import time
from typing import List, Optional

import psutil

from ..executor.thread_pool import ManagedThreadPoolExecutor
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)


class ProcessManager:
    """
    Process tree termination with escalating force.

    The blocking psutil work runs in a thread pool so that termination can be
    awaited from the event loop.
    """

    def __init__(self, pool: Optional[ManagedThreadPoolExecutor] = None):
        self.pool = pool

    async def kill_process_tree(self, pid: int, name: str = "build process") -> None:
        """Terminate a process tree without blocking the event loop."""
        if self.pool is not None:
            await self.pool.run_async(self.terminate_process_tree, pid, name)
        else:
            await asyncio.get_running_loop().run_in_executor(
                None, self.terminate_process_tree, pid, name
            )

    def terminate_process_tree(self, pid: int, name: str) -> None:
        """
        Terminate a process and all its children: SIGTERM, then SIGKILL.

        Handles processes that exit between enumeration and signalling, and
        finishes with a kill of the process group the build was started in.
        """
        if pid <= 0:
            logger.warning(f"Invalid PID {pid} for {name}, skipping termination")
            return

        logger.info(f"Terminating {name} (PID: {pid}) and its process tree")

        try:
            parent = psutil.Process(pid)
        except psutil.NoSuchProcess:
            logger.info(f"Process {name} (PID: {pid}) already terminated")
            self._cleanup_process_group(pid, name)
            return
        except psutil.AccessDenied:
            logger.warning(f"Access denied to process {name} (PID: {pid}), attempting force kill")
            self._force_kill_process(pid)
            return

        phases = [
            ("graceful", False, TimeoutConstants.TERMINATION_GRACEFUL_TIMEOUT),
            ("force_kill", True, TimeoutConstants.TERMINATION_FORCE_TIMEOUT),
        ]

        for phase_name, force, timeout in phases:
            processes = [parent] + self._get_process_children(parent)
            processes = [p for p in processes if self._is_process_alive(p)]
            if not processes:
                break

            signaled = self._apply_termination_signal(processes, force)
            remaining = self._wait_for_termination(signaled, timeout)
            if not remaining:
                logger.info(f"All processes of {name} terminated in phase {phase_name}")
                break
            logger.warning(f"Phase {phase_name}: {len(remaining)} processes of {name} still alive")

        self._cleanup_process_group(pid, name)

    def _is_process_alive(self, process: psutil.Process) -> bool:
        """Safely check if a process is still alive and not a zombie."""
        try:
            if not process.is_running():
                return False
            return process.status() not in [psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD]
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False

    def _get_process_children(self, parent: psutil.Process) -> List[psutil.Process]:
        """Safely get all children of a process, handling race conditions."""
        try:
            return list(parent.children(recursive=True))
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

    def _apply_termination_signal(self, processes: List[psutil.Process],
                                  force: bool) -> List[psutil.Process]:
        """Signal each process and return those that were signaled."""
        signaled = []
        for process in processes:
            try:
                if force:
                    process.kill()
                else:
                    process.terminate()
                signaled.append(process)
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                logger.warning(f"Access denied signalling PID {process.pid}")
        return signaled

    def _wait_for_termination(self, processes: List[psutil.Process],
                              timeout: float) -> List[psutil.Process]:
        """Wait for processes to terminate and return any that are still alive."""
        if not processes:
            return []

        # Our own children are reaped by the event loop's child watcher, so they
        # are polled here instead of being waited on (which would reap them).
        own_pid = os.getpid()
        direct = [p for p in processes if self._parent_pid(p) == own_pid]
        others = [p for p in processes if p not in direct]

        remaining: List[psutil.Process] = []
        if others:
            _, still_alive = psutil.wait_procs(others, timeout=timeout)
            remaining.extend(still_alive)

        deadline = time.monotonic() + timeout
        while direct and time.monotonic() < deadline:
            direct = [p for p in direct if self._is_process_alive(p)]
            if direct:
                time.sleep(0.05)
        remaining.extend(direct)

        return [p for p in remaining if self._is_process_alive(p)]

    def _parent_pid(self, process: psutil.Process) -> int:
        try:
            return process.ppid()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return -1

    def _cleanup_process_group(self, pid: int, name: str) -> None:
        """Kill the process group the build was started in, if it still exists."""
        try:
            os.killpg(pid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group {pid} for {name}")
        except ProcessLookupError:
            pass
        except PermissionError:
            logger.debug(f"No permission to kill process group {pid}")

    def _force_kill_process(self, pid: int) -> None:
        """Force kill a single process by PID as last resort."""
        try:
            os.kill(pid, signal.SIGKILL)
            logger.warning(f"Force killed process PID {pid}")
        except ProcessLookupError:
            pass
