"""Cancellable periodic task.

One asyncio task runs the tick coroutine, then sleeps out the rest of the
interval. Ticks therefore never overlap: a tick that overruns the interval
delays the next one instead of running beside it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import ApiError

_LOGGER = logging.getLogger(__name__)


class PeriodicTask:
    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        interval_s: float,
        tick: Callable[[], Awaitable[None]],
        name: str,
    ) -> None:
        self._loop = loop
        self._interval_s = float(interval_s)
        self._tick = tick
        self._name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Run a tick now, then every interval until stop()."""
        self.stop()
        _LOGGER.debug("%s: starting (interval=%.1fs)", self._name, self._interval_s)
        self._task = self._loop.create_task(self._run(), name=self._name)

    def stop(self) -> None:
        """Cancel the task. Safe from any state, including mid-tick."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            _LOGGER.debug("%s: stopping", self._name)
            task.cancel()

    async def _run(self) -> None:
        while True:
            started = self._loop.time()
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except ApiError as e:
                _LOGGER.warning("%s: tick failed: %s", self._name, e)
            except Exception:
                # The loop survives a failed tick.
                _LOGGER.exception("%s: tick error", self._name)

            elapsed = self._loop.time() - started
            await asyncio.sleep(max(0.0, self._interval_s - elapsed))
