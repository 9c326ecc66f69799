"""
Listener side (ghost mode): follow a broadcaster's playback.

Each tick fetches the broadcaster's last snapshot, extrapolates where they
are now, and reconciles local playback:
- different (or no) local song: resolve the song, load it at the
  extrapolated position, mirror pause
- same song: seek only when drift exceeds the tolerance, then mirror pause

Ticks run one at a time. stop() cancels an in-flight tick; a response that
comes back after stop() is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from .api_client import MusicApiClient
from .errors import ApiError
from .models import PlaybackSnapshot
from .periodic import PeriodicTask
from .playback import PlaybackController

_LOGGER = logging.getLogger(__name__)


class SyncLoop:
    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        playback: PlaybackController,
        api: MusicApiClient,
        interval_s: float = 3.0,
        drift_tolerance_s: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._loop = loop
        self._playback = playback
        self._api = api
        self._interval_s = interval_s
        self._drift_tolerance_s = drift_tolerance_s
        self._clock = clock

        self._broadcaster_id: Optional[str] = None
        # Bumped on every start/stop; a tick only applies results for its own generation.
        self._generation = 0
        self._ticker: Optional[PeriodicTask] = None

    @property
    def running(self) -> bool:
        return self._ticker is not None and self._ticker.running

    @property
    def broadcaster_id(self) -> Optional[str]:
        return self._broadcaster_id

    def start(self, broadcaster_id: str) -> None:
        self.stop()
        self._generation += 1
        self._broadcaster_id = broadcaster_id
        generation = self._generation

        async def _tick() -> None:
            await self.sync_once(broadcaster_id, generation)

        self._ticker = PeriodicTask(
            loop=self._loop,
            interval_s=self._interval_s,
            tick=_tick,
            name=f"sync:{broadcaster_id}",
        )
        _LOGGER.info("Sync: following %s", broadcaster_id)
        self._ticker.start()

    def stop(self) -> None:
        self._generation += 1
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
            _LOGGER.info("Sync: stopped following %s", self._broadcaster_id)
        self._broadcaster_id = None

    def _is_current(self, generation: Optional[int]) -> bool:
        return generation is None or generation == self._generation

    async def sync_once(self, broadcaster_id: str, generation: Optional[int] = None) -> None:
        """One reconciliation round. Fetch and resolve failures leave state unchanged."""
        try:
            snapshot = await self._api.fetch_playback_snapshot(broadcaster_id)
        except ApiError as e:
            _LOGGER.warning("Sync: failed to fetch playback of %s: %s", broadcaster_id, e)
            return

        if not self._is_current(generation):
            _LOGGER.debug("Sync: dropping stale snapshot for %s", broadcaster_id)
            return

        if not snapshot.is_syncable:
            _LOGGER.debug("Sync: %s is not live or has no song", broadcaster_id)
            return

        current = self._playback.current_song
        if current is None or current.id != snapshot.song_id:
            await self._switch_song(snapshot, generation)
        else:
            self.reconcile(snapshot)

    async def _switch_song(self, snapshot: PlaybackSnapshot, generation: Optional[int]) -> None:
        try:
            song = await self._api.resolve_song(snapshot.song_id)
        except ApiError as e:
            _LOGGER.warning("Sync: failed to load song %s: %s", snapshot.song_id, e)
            return

        if not self._is_current(generation):
            _LOGGER.debug("Sync: dropping stale song %s", snapshot.song_id)
            return

        # Extrapolate after the resolve round trip so its latency is covered too.
        position = snapshot.effective_position(self._clock())
        _LOGGER.info("Sync: switching to %s at %.1fs", song.id, position)
        self._playback.load_remote_song(song, position, snapshot.is_paused)

    def reconcile(self, snapshot: PlaybackSnapshot) -> None:
        """Same song: correct position beyond tolerance, mirror pause state."""
        position = snapshot.effective_position(self._clock())
        drift = abs(self._playback.position - position)
        if drift > self._drift_tolerance_s:
            _LOGGER.debug("Sync: drift %.2fs; seeking to %.1fs", drift, position)
            self._playback.seek(position)

        if snapshot.is_paused:
            if self._playback.is_playing:
                self._playback.pause()
        elif not self._playback.is_playing:
            self._playback.play()
