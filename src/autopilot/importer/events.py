"""Status Event Bus.

Carries progress events from pollers to an observer without letting the
observer slow the import down.

Producers call ``publish``/``emit`` from any execution context; this never
blocks and never raises. A periodic drain task moves every queued event to
the observer in FIFO order. The observer runs in a worker thread, so a slow
observer delays only the drain, never device polling.

Usage:
    bus = StatusEventBus(observer=ConsoleObserver(), drain_interval=0.1)
    await bus.start()
    bus.emit("Submitting SN123", Severity.INFO, serial_number="SN123")
    ...
    await bus.stop()  # final drain
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import queue
import threading
from typing import Optional

from .adapters.observers import ConsoleObserver
from .domain.entities import Severity, StatusEvent
from .domain.ports import IStatusObserver

logger = logging.getLogger(__name__)


class StatusEventBus:
    """Thread-safe FIFO channel from event producers to one observer.

    Attributes:
        observer: Receives ``(message, severity)`` for each event
        drain_interval: Seconds between periodic drains
    """

    def __init__(
        self,
        observer: Optional[IStatusObserver] = None,
        drain_interval: float = 0.1,
    ):
        self.observer = observer or ConsoleObserver()
        self.drain_interval = drain_interval

        self._queue: queue.SimpleQueue[StatusEvent] = queue.SimpleQueue()
        # Serializes drains so FIFO delivery holds across drain calls
        self._drain_lock = threading.Lock()
        self._drain_task: Optional[asyncio.Task] = None

        self._published = 0
        self._delivered = 0
        self._dropped = 0
        self._observer_errors = 0

    # ----------------------------------------
    # Producer Side
    # ----------------------------------------

    def publish(self, event: StatusEvent) -> None:
        """Enqueue an event. Never blocks, never raises."""
        try:
            self._queue.put_nowait(event)
            self._published += 1
        except Exception as e:
            self._dropped += 1
            logger.debug(f"Dropped status event: {e}")

    def emit(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        serial_number: Optional[str] = None,
    ) -> None:
        """Build and publish a StatusEvent."""
        try:
            event = StatusEvent(
                message=message, severity=severity, serial_number=serial_number
            )
        except Exception as e:
            self._dropped += 1
            logger.debug(f"Could not build status event: {e}")
            return
        self.publish(event)

    # ----------------------------------------
    # Consumer Side
    # ----------------------------------------

    def drain(self) -> int:
        """Forward every currently queued event to the observer.

        Returns:
            Number of events taken off the queue
        """
        drained = 0
        with self._drain_lock:
            while True:
                try:
                    event = self._queue.get_nowait()
                except queue.Empty:
                    break
                drained += 1
                try:
                    self.observer.notify(event.message, event.severity)
                    self._delivered += 1
                except Exception as e:
                    self._observer_errors += 1
                    logger.warning(f"Status observer failed: {e}")
        return drained

    async def start(self) -> None:
        """Start the periodic drain task."""
        if self._drain_task and not self._drain_task.done():
            return
        self._drain_task = asyncio.create_task(self._drain_loop())
        logger.debug(f"Status event drain started (every {self.drain_interval}s)")

    async def stop(self) -> None:
        """Stop the periodic drain and flush whatever is still queued."""
        if self._drain_task:
            self._drain_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._drain_task
            self._drain_task = None
        await asyncio.to_thread(self.drain)

    async def _drain_loop(self) -> None:
        while True:
            await asyncio.sleep(self.drain_interval)
            await asyncio.to_thread(self.drain)

    def reset(self) -> None:
        """Discard queued events and zero the counters."""
        with self._drain_lock:
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break
        self._published = 0
        self._delivered = 0
        self._dropped = 0
        self._observer_errors = 0

    # ----------------------------------------
    # Introspection
    # ----------------------------------------

    @property
    def pending(self) -> int:
        """Approximate number of queued, undelivered events."""
        return self._queue.qsize()

    @property
    def stats(self) -> dict[str, int]:
        return {
            "published": self._published,
            "delivered": self._delivered,
            "dropped": self._dropped,
            "observer_errors": self._observer_errors,
        }
