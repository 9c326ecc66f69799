"""Broadcaster side: publish our playback state while live."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .api_client import MusicApiClient
from .errors import ApiError
from .event_bus import EventBus, EventHandler, subscribe
from .periodic import PeriodicTask
from .playback import PlaybackController
from .util import fire_and_forget

_LOGGER = logging.getLogger(__name__)


class _PlayStateHandler(EventHandler):
    """Publishes immediately when play/pause or the song changes."""

    def __init__(self, event_bus: EventBus, broadcast: "BroadcastLoop") -> None:
        self._broadcast = broadcast
        super().__init__(event_bus)

    @subscribe
    def playback_play_state(self, _data: Optional[dict] = None) -> None:
        if self._broadcast.running:
            self._broadcast.publish_soon()


class BroadcastLoop:
    """
    Every interval (and right away on play/pause) push the current song,
    position and pause flag to the server. Failed publishes are logged; the
    next tick simply tries again.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        event_bus: EventBus,
        playback: PlaybackController,
        api: MusicApiClient,
        interval_s: float = 3.0,
    ) -> None:
        self._loop = loop
        self._playback = playback
        self._api = api
        self._ticker = PeriodicTask(
            loop=loop,
            interval_s=interval_s,
            tick=self.publish,
            name="broadcast",
        )
        self._play_state_handler = _PlayStateHandler(event_bus, self)

    @property
    def running(self) -> bool:
        return self._ticker.running

    def start(self) -> None:
        _LOGGER.info("Broadcast: started")
        self._ticker.start()

    def stop(self) -> None:
        if self._ticker.running:
            _LOGGER.info("Broadcast: stopped")
        self._ticker.stop()

    def publish_soon(self) -> None:
        """Out-of-band publish, not awaited by the caller."""
        fire_and_forget(self._loop, self.publish(), "broadcast publish")

    async def publish(self) -> None:
        song = self._playback.current_song
        if song is None:
            return

        position = self._playback.position
        is_paused = not self._playback.is_playing
        try:
            await self._api.publish_playback_snapshot(song.id, position, is_paused)
        except ApiError as e:
            _LOGGER.warning("Broadcast: publish failed: %s", e)
            return
        _LOGGER.debug("Broadcast: %s @ %.1fs paused=%s", song.id, position, is_paused)
