"""
Log forwarding for the orchestration module.

This module fans every Log Event out to the console logger and the two remote
sinks (message bus and analytics database). Each remote sink has one bounded
queue and one worker task, so events reach a sink in the order they were
emitted, and a slow sink makes the producer wait instead of buffering without
limit.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from ..models.runtime import LogEvent, LogSeverity, LogSource
from ..services.base import AnalyticsDatabase, MessagePublisher

logger = logging.getLogger(__name__)

# Build output is logged under its own name so it can be told apart from job messages.
build_output_logger = logging.getLogger("buildjob.build_output")

SinkDelivery = Callable[[LogEvent], Awaitable[None]]


class LogForwarder:
    """
    Delivers Log Events to the console, the message bus and the analytics database.

    Delivery failures are logged and dropped: losing a log line never fails
    the build. `flush()` waits until every event emitted so far has been
    handled by every sink.
    """

    def __init__(self, publisher: MessagePublisher, analytics: AnalyticsDatabase,
                 deployment_id: str, queue_size: int = 1000):
        self.publisher = publisher
        self.analytics = analytics
        self.deployment_id = deployment_id
        self.queue_size = queue_size

        self._sinks: Dict[str, SinkDelivery] = {
            "message_bus": self._publish,
            "analytics": self._insert,
        }
        self._queues: Dict[str, asyncio.Queue] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._closed = False
        self.stats = {"emitted": 0, "delivery_failures": 0}

    @property
    def is_running(self) -> bool:
        return bool(self._workers) and not self._closed

    def start(self) -> None:
        """Create the sink queues and worker tasks on the running loop."""
        if self._workers or self._closed:
            return
        for name, deliver in self._sinks.items():
            queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
            self._queues[name] = queue
            self._workers[name] = asyncio.create_task(
                self._run_worker(name, queue, deliver), name=f"log-forwarder-{name}"
            )
        logger.debug(f"Log forwarder started with {len(self._workers)} sinks")

    async def emit(self, event: LogEvent) -> None:
        """
        Log an event to the console and queue it for both remote sinks.

        Waits while a sink's queue is full.
        """
        self._log_to_console(event)
        self.stats["emitted"] += 1
        if self._closed:
            logger.debug("Log forwarder closed, event kept on console only")
            return
        self.start()
        for queue in self._queues.values():
            await queue.put(event)

    async def emit_status(self, text: str, severity: LogSeverity = LogSeverity.INFO) -> None:
        """Emit a status event and wait until both sinks have handled it."""
        await self.emit(LogEvent.status(text, severity))
        await self.flush()

    async def flush(self) -> None:
        """Wait until every queued event has been handled by every sink."""
        if not self._queues or self._closed:
            return
        await asyncio.gather(*(queue.join() for queue in self._queues.values()))

    async def close(self, timeout: Optional[float] = None) -> None:
        """
        Flush pending events (bounded by `timeout`) and stop the workers.

        Never raises; events still queued after the timeout are dropped.
        """
        if self._closed:
            return
        try:
            await asyncio.wait_for(self.flush(), timeout=timeout)
        except asyncio.TimeoutError:
            pending = sum(queue.qsize() for queue in self._queues.values())
            logger.warning(f"Log forwarder flush timed out, dropping {pending} pending events")
        finally:
            self._closed = True
            workers = list(self._workers.values())
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            logger.debug("Log forwarder closed")

    def _log_to_console(self, event: LogEvent) -> None:
        text = event.text.rstrip("\n")
        if event.source is LogSource.STATUS:
            target = logger
        else:
            target = build_output_logger
        if event.severity is LogSeverity.ERROR:
            target.error(text)
        else:
            target.info(text)

    async def _run_worker(self, name: str, queue: asyncio.Queue, deliver: SinkDelivery) -> None:
        while True:
            event = await queue.get()
            try:
                await deliver(event)
            except Exception as e:
                self.stats["delivery_failures"] += 1
                logger.warning(f"Failed to forward log event to {name}: {e}")
            finally:
                queue.task_done()

    async def _publish(self, event: LogEvent) -> None:
        await self.publisher.publish(event.bus_text)

    async def _insert(self, event: LogEvent) -> None:
        await self.analytics.insert_log_line(
            self.deployment_id, event.text, event.severity.value
        )
