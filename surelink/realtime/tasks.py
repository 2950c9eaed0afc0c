from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

SweepFn = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """Runs ``fn`` every ``interval_ms`` on the event loop until stopped."""

    def __init__(self, name: str, interval_ms: float, fn: SweepFn):
        self.name = name
        self.interval_ms = interval_ms
        self._fn = fn
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"sweep:{self.name}")
        logger.debug(f"Periodic task started | {self.name} every {self.interval_ms}ms")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.debug(f"Periodic task stopped | {self.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            try:
                result = self._fn()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # one failed sweep must not end the schedule
                logger.exception(f"Periodic task {self.name} failed")
