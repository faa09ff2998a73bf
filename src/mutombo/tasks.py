from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TaskBody = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """
    Perpetual background job on the running event loop.

    Inputs (constructor):
        name: Label used in log lines and as the asyncio task name.
        interval_seconds: Seconds slept between two runs.
        body: Callable (sync or async) executed once per interval.
        run_immediately: Run once before the first sleep (default False).

    Outputs:
        PeriodicTask instance (call start() from inside the loop).

    An exception raised by ``body`` is logged and the loop continues with the
    next interval; only stop() ends it.

    Example:
        >>> async def main():
        ...     task = PeriodicTask("stats", 5.0, stats.refresh)
        ...     task.start()
        ...     await task.stop()
        >>> asyncio.run(main())  # doctest: +SKIP
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        body: TaskBody,
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self.interval_seconds = max(0.01, float(interval_seconds))
        self.body = body
        self.run_immediately = run_immediately
        self.runs = 0
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        """Execute ``body`` once, logging instead of propagating errors."""
        try:
            result = self.body()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self.failures += 1
            logger.error("Background task %s failed: %s", self.name, exc, exc_info=True)
        finally:
            self.runs += 1

    async def _loop(self) -> None:
        if self.run_immediately:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)
        logger.debug("Started background task %s (every %.1fs)", self.name, self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Stopped background task %s", self.name)
