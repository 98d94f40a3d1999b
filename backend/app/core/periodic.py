"""
Cancellable fixed-interval task on the running event loop.

Used for location sharing (reporter side) and mailbox polling (observer
side). The first tick fires one interval after start(); there is no
jitter and no catch-up for ticks that overrun.

stop() is synchronous: once it returns, no further tick runs, including
one whose sleep has already elapsed but has not been resumed yet.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class PeriodicTask:
    def __init__(self, name: str, interval: float, callback: TickCallback) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule the loop. Must be called with an event loop running."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("Periodic task %s started (every %.1fs)", self.name, self.interval)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
        logger.debug("Periodic task %s stopped after %d ticks", self.name, self.ticks)

    async def wait_closed(self) -> None:
        """Wait for a stopped loop to unwind."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            self.ticks += 1
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Periodic task %s tick failed: %s", self.name, e)
