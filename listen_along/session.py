"""Live session roles: broadcasting our playback, or following someone else's.

At most one role is active. Entering one role always tears the other down
first, so the broadcast and sync loops never run together. Transitions are
serialized: a transition that is waiting on the server holds the session
lock, and any other transition waits for it to finish.
"""

from __future__ import annotations

import asyncio
import logging

from .api_client import MusicApiClient
from .broadcast import BroadcastLoop
from .errors import ApiError
from .event_bus import EventBus
from .models import TOPIC_LIVE_SESSION, LiveRole, LiveSessionState
from .playback import PlaybackController
from .sync import SyncLoop

_LOGGER = logging.getLogger(__name__)


class LiveSession:
    def __init__(
        self,
        *,
        event_bus: EventBus,
        playback: PlaybackController,
        api: MusicApiClient,
        broadcast: BroadcastLoop,
        sync: SyncLoop,
    ) -> None:
        self._event_bus = event_bus
        self._playback = playback
        self._api = api
        self._broadcast = broadcast
        self._sync = sync
        self._state = LiveSessionState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> LiveSessionState:
        return self._state

    @property
    def role(self) -> LiveRole:
        return self._state.role

    def _set_state(self, state: LiveSessionState) -> None:
        self._state = state
        _LOGGER.info("Live session: %s", state.as_payload())
        self._event_bus.publish(TOPIC_LIVE_SESSION, state.as_payload())

    # ---------------------------------------------------------------------
    # Broadcaster
    # ---------------------------------------------------------------------

    async def go_live(self, genre: str) -> bool:
        """Start broadcasting under `genre`. Returns False if the server refused."""
        genre = (genre or "").strip()
        if not genre:
            raise ValueError("A genre is required to go live")

        async with self._lock:
            await self._end_role()

            try:
                await self._api.set_live_status(genre)
            except ApiError as e:
                _LOGGER.warning("Failed to go live: %s", e)
                return False

            self._broadcast.start()
            self._set_state(LiveSessionState(role=LiveRole.BROADCASTER, genre=genre))
            return True

    async def stop_live(self) -> None:
        async with self._lock:
            await self._stop_broadcasting()

    async def _stop_broadcasting(self) -> None:
        if self.role != LiveRole.BROADCASTER:
            return

        self._broadcast.stop()
        self._set_state(LiveSessionState())
        try:
            await self._api.set_live_status(None)
        except ApiError as e:
            _LOGGER.warning("Failed to clear live status: %s", e)

    # ---------------------------------------------------------------------
    # Listener (ghost mode)
    # ---------------------------------------------------------------------

    async def join(self, broadcaster_id: str) -> None:
        """Follow `broadcaster_id`; local playback becomes ghost-driven."""
        async with self._lock:
            if self.role == LiveRole.LISTENER:
                self._sync.stop()
            else:
                await self._end_role()

            self._playback.set_ghost_mode(True)
            self._sync.start(broadcaster_id)
            self._set_state(LiveSessionState(role=LiveRole.LISTENER, broadcaster_id=broadcaster_id))

    async def leave(self) -> None:
        """Exit ghost mode. Playback pauses; it is no longer ours to advance."""
        async with self._lock:
            self._stop_following()

    def _stop_following(self) -> None:
        if self.role != LiveRole.LISTENER:
            return

        self._sync.stop()
        self._playback.set_ghost_mode(False)
        self._playback.pause()
        self._set_state(LiveSessionState())

    # ---------------------------------------------------------------------
    # Teardown
    # ---------------------------------------------------------------------

    async def _end_role(self) -> None:
        """Leave whichever role is active. Caller holds the lock."""
        if self.role == LiveRole.LISTENER:
            self._stop_following()
        elif self.role == LiveRole.BROADCASTER:
            await self._stop_broadcasting()

    async def close(self) -> None:
        async with self._lock:
            await self._end_role()
