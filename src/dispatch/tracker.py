"""Live courier position tracking for a single trip.

Two independent tasks feed the same write path:

- a sampler that reads the current position every ``interval`` seconds, so
  the order keeps a fresh position even when the courier stands still;
- a watcher that forwards every position change as soon as it is reported.

The tracker is not tied to any page or connection. It runs until ``stop()``
is called or the order stops accepting positions (the trip is over).
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Protocol

import structlog

from delivery.geo import Coordinates
from shared.config import get_settings
from shared.exceptions import InvalidTransition, NotFound

logger = structlog.get_logger(__name__)


class PositionSource(Protocol):
    async def current_position(self) -> Coordinates | None: ...

    def watch(self) -> AsyncIterator[Coordinates]: ...


class QueuePositionSource:
    """Position source fed by ``push()``, e.g. from a device reporting over HTTP."""

    def __init__(self) -> None:
        self._last: Coordinates | None = None
        self._queue: asyncio.Queue[Coordinates] = asyncio.Queue()

    def push(self, position: Coordinates) -> None:
        self._last = position
        self._queue.put_nowait(position)

    async def current_position(self) -> Coordinates | None:
        return self._last

    async def watch(self) -> AsyncIterator[Coordinates]:
        while True:
            yield await self._queue.get()


class CourierTracker:
    def __init__(
        self,
        record: Callable[[Coordinates], object],
        source: PositionSource,
        interval: float | None = None,
        name: str = "",
    ) -> None:
        self.record = record
        self.source = source
        self.interval = interval if interval is not None else get_settings().courier_location_interval_seconds
        self.name = name
        self.recorded = 0
        self._tasks: list[asyncio.Task] = []
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Start both tasks on the running event loop."""
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._sample_loop(), name=f"courier-sampler-{self.name}"),
            loop.create_task(self._watch_loop(), name=f"courier-watcher-{self.name}"),
        ]
        logger.info("courier_tracking_started", tracker=self.name, interval=self.interval)

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None
        current = asyncio.current_task() if running_loop else None

        for task in self._tasks:
            if task is current or task.done():
                continue
            if task.get_loop() is running_loop:
                task.cancel()
            else:
                task.get_loop().call_soon_threadsafe(task.cancel)
        logger.info("courier_tracking_stopped", tracker=self.name, recorded=self.recorded)

    async def wait(self) -> None:
        """Wait until both tasks have finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def __aenter__(self) -> "CourierTracker":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()
        await self.wait()

    def _write(self, position: Coordinates) -> bool:
        """Record one position. Returns False once the trip no longer accepts positions."""
        try:
            self.record(position)
        except (InvalidTransition, NotFound) as exc:
            logger.info("courier_tracking_rejected", tracker=self.name, reason=str(exc))
            self.stop()
            return False
        self.recorded += 1
        return True

    async def _sample_loop(self) -> None:
        while not self._stopped.is_set():
            try:
                position = await self.source.current_position()
                if position is not None and not self._write(position):
                    return
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                return
            except Exception:
                logger.exception("courier_sample_failed", tracker=self.name)
                await asyncio.sleep(self.interval)

    async def _watch_loop(self) -> None:
        try:
            async for position in self.source.watch():
                if self._stopped.is_set() or not self._write(position):
                    return
        except asyncio.CancelledError:
            return
