"""Owned periodic background tasks.

Sweeps and summaries run as asyncio tasks owned by the component that needs
them, started when the component is first used inside a running loop and
stopped explicitly on shutdown. There are no module-level timers.
"""

import asyncio
import contextlib
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a synchronous callback every `interval` seconds."""

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        if interval <= 0:
            raise ValueError("Interval must be positive.")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Starts the loop if a running event loop is available.

        Returns:
            True if the task is running after the call.
        """
        if self.running:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, '{self.name}' not started yet.")
            return False
        self._task = loop.create_task(self._run(), name=f"shiplink-{self.name}")
        logger.debug(f"Background task '{self.name}' started (every {self.interval}s).")
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug(f"Background task '{self.name}' stopped.")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self._callback()
            except Exception as e:
                # Keep the loop alive; a failed sweep is retried on the next tick.
                logger.error(f"Background task '{self.name}' failed: {e}", exc_info=True)
