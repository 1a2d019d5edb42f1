from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, name: str) -> None:
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()


class AsyncioTimers:
    """Repeating timers on the running asyncio loop.

    Callbacks are plain functions executed on the loop thread. The handle is
    checked before every call, so a callback never runs after ``cancel()``
    even when cancellation happens from inside another callback.
    """

    def call_every(self, interval: float, callback: Callable[[], None], name: str = "timer") -> TimerHandle:
        handle = TimerHandle(name)

        async def _runner() -> None:
            while True:
                await asyncio.sleep(float(interval))
                if handle.cancelled:
                    return
                try:
                    callback()
                except Exception:
                    logger.exception("timer callback failed: name=%s", name)

        handle._task = asyncio.get_running_loop().create_task(_runner(), name=name)
        return handle
