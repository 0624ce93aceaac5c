"""
Signal handling for the orchestration module.

This module registers the job's shutdown triggers on the running event loop:
SIGTERM/SIGINT, and the loop exception handler that receives errors nobody
awaited. Both delegate to a single shutdown callback owned by the job
controller.
"""

import asyncio
import logging
import signal
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Signature of the callback: (reason, error). A signal passes no error.
ShutdownCallback = Callable[[str, Optional[BaseException]], None]

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class SignalHandler:
    """
    Manages signal registration and cleanup for one job.

    Handlers are installed with `loop.add_signal_handler`, so the callback
    runs on the event loop thread and may touch job state directly.
    """

    def __init__(self, on_shutdown: ShutdownCallback):
        self.on_shutdown = on_shutdown
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._original_exception_handler: Optional[Callable[..., Any]] = None
        self._installed_signals: list = []
        self._signal_handlers_set = False

    def setup_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Set up signal and exception handlers on the running loop."""
        if self._signal_handlers_set:
            return

        self._loop = loop or asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
                self._installed_signals.append(sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.warning(f"Failed to set up handler for {sig.name}: {e}")

        self._original_exception_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._handle_loop_exception)
        self._signal_handlers_set = True
        logger.debug("Shutdown triggers registered")

    def cleanup_signal_handlers(self) -> None:
        """Remove our handlers and restore the original exception handler."""
        if not self._signal_handlers_set or self._loop is None:
            return

        try:
            for sig in self._installed_signals:
                self._loop.remove_signal_handler(sig)
            self._loop.set_exception_handler(self._original_exception_handler)
            logger.debug("Shutdown triggers removed")
        except Exception as e:
            logger.warning(f"Failed to restore signal handlers: {e}")
        finally:
            self._installed_signals = []
            self._signal_handlers_set = False

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.warning(f"Signal {sig.name} received. Requesting shutdown.")
        self.on_shutdown(f"Build interrupted by {sig.name}", None)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop,
                               context: Dict[str, Any]) -> None:
        error = context.get("exception")
        message = context.get("message", "Unhandled error in event loop")
        if error is None:
            # Warnings without an exception (e.g. unclosed transports) are not fatal.
            logger.warning(f"Event loop reported: {message}")
            return

        logger.error(f"Unhandled asynchronous error: {message}: {error!r}")
        self.on_shutdown(f"Unhandled error: {error}", error)
