"""Utility methods."""

import asyncio
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, Set

from .errors import ApiError

_LOGGER = logging.getLogger(__name__)

# Tasks started by fire_and_forget; held so they are not garbage collected mid-flight.
_BACKGROUND_TASKS: Set[asyncio.Task] = set()

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def fire_and_forget(
    loop: asyncio.AbstractEventLoop,
    coro: Awaitable[Any],
    description: str,
) -> asyncio.Task:
    """Run a coroutine in the background; failures are logged, never raised.

    The caller must not await the returned task.
    """
    task = loop.create_task(coro)
    _BACKGROUND_TASKS.add(task)

    def _done(t: asyncio.Task) -> None:
        _BACKGROUND_TASKS.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is None:
            return
        if isinstance(exc, ApiError):
            _LOGGER.warning("%s failed: %s", description, exc)
        else:
            _LOGGER.error("%s failed", description, exc_info=exc)

    task.add_done_callback(_done)
    return task


def format_time(seconds: float) -> str:
    """Format seconds as m:ss."""
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        seconds = 0
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """Parse an ISO-8601 server timestamp into epoch seconds.

    Timestamps without a zone are UTC. Returns None for missing or bad input.
    """
    if not value:
        return None

    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # Servers may send 7 fractional digits; datetime takes at most 6.
    text = _FRACTION_RE.sub(r".\1", text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        _LOGGER.debug("Unparseable timestamp %r", value)
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()
