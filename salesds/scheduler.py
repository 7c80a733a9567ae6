"""
Periodic background tasks (cache cleanup, autosave).

A task sleeps on a stop event rather than being cancelled, so stopping it
waits for an in-flight run to finish before returning.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from .logger import get_logger

Action = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """Runs an action every ``interval_s`` seconds until stopped."""

    def __init__(self, name: str, interval_s: float, action: Action):
        self.name = name
        self.interval_s = interval_s
        self.action = action
        self.run_count = 0
        self.error_count = 0
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._stopped = False
        self.logger = get_logger("PeriodicTask")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start the loop. Idempotent while running."""
        if self.is_running or self._stopped:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=f"salesds-{self.name}")
        self.logger.info(f"Started {self.name} (every {self.interval_s}s)")

    async def run_once(self):
        """Run the action now, logging any failure."""
        try:
            result = self.action()
            if inspect.isawaitable(result):
                await result
            self.run_count += 1
        except Exception as e:
            self.error_count += 1
            self.logger.error(f"{self.name} run failed: {e}", exc_info=True)

    async def _loop(self):
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                await self.run_once()

    async def stop(self):
        """Stop the loop and wait for it to exit. Calling again is a no-op."""
        if self._stopped:
            return
        self._stopped = True
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self.logger.info(f"Stopped {self.name} after {self.run_count} runs")
