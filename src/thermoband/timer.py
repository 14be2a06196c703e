"""
Local therapy countdown.

Runs independently of the BLE connection so the displayed remaining time stays
right across disconnects. One countdown at a time; completion is signalled
exactly once per countdown.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .core import TICK_INTERVAL_S

logger = logging.getLogger(__name__)


class TimerEngine:
    """One-second countdown driven by an asyncio task."""

    def __init__(
        self,
        on_tick: Optional[Callable[[int], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
        interval: float = TICK_INTERVAL_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize an idle timer.

        Args:
            on_tick: Called with the remaining seconds after every tick
            on_complete: Called once when a countdown reaches zero
            interval: Seconds per tick
            sleep: Awaitable sleep, replaceable for simulated time
        """
        self._on_tick = on_tick
        self._on_complete = on_complete
        self._interval = interval
        self._sleep = sleep
        self._remaining = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._running

    def set_on_tick(self, callback: Callable[[int], None]) -> None:
        self._on_tick = callback

    def set_on_complete(self, callback: Callable[[], None]) -> None:
        self._on_complete = callback

    def start(self, total_seconds: int) -> None:
        """Start a countdown, cancelling any active one.

        Must be called from within a running event loop.

        Args:
            total_seconds: Countdown length; non-positive values just stop
        """
        self.stop()
        if total_seconds <= 0:
            return

        self._remaining = total_seconds
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Timer started: {total_seconds}s")

    def stop(self) -> None:
        """Cancel the active countdown. Safe to call at any time."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self._running:
            logger.debug(f"Timer stopped with {self._remaining}s left")
        self._running = False
        self._remaining = 0

    def tick(self) -> None:
        """Advance the countdown by one second."""
        if not self._running:
            return

        self._remaining = max(0, self._remaining - 1)
        finished = self._remaining == 0
        if finished:
            # Cleared before callbacks so completion can only fire once
            self._running = False
            self._task = None

        if self._on_tick:
            try:
                self._on_tick(self._remaining)
            except Exception as e:
                logger.error(f"Timer tick callback error: {e}")

        if finished:
            self._complete()

    def _complete(self) -> None:
        logger.info("Timer complete")
        if self._on_complete:
            try:
                self._on_complete()
            except Exception as e:
                logger.error(f"Timer complete callback error: {e}")

    async def _run(self) -> None:
        me = asyncio.current_task()
        while True:
            await self._sleep(self._interval)
            # A newer countdown owns the engine once start() or stop() ran
            if not self._running or self._task is not me:
                return
            self.tick()

    async def join(self) -> None:
        """Wait for the active countdown to finish or be cancelled."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
