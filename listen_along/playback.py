"""
Playback controller.

Owns the media player and everything the UI renders about playback: current
song, play/pause, position, queue, shuffle/repeat and the ghost mode flag.

States: idle (no song) -> loaded -> playing / paused. Ghost mode is an
orthogonal flag; while it is set, "ended" notifications do not advance the
queue (the sync loop decides what plays next).

State changes are published on the EventBus:
- playback_state:      full PlaybackState payload on state changes, deduplicated
- playback_play_state: {song_id, is_playing} when either changes
- playback_position:   {song_id, position, duration, progress} on time updates,
                       at most once per tenth of a second of media time

Calls to the music service (record play) are fire-and-forget: local playback
never waits on them and is never rolled back by their failure.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Any, List, Optional, Protocol, Sequence

from .api_client import MusicApiClient
from .event_bus import EventBus
from .models import (
    TOPIC_PLAY_STATE,
    TOPIC_PLAYBACK_POSITION,
    TOPIC_PLAYBACK_STATE,
    MediaEvent,
    PlaybackState,
    Song,
)
from .util import fire_and_forget

_LOGGER = logging.getLogger(__name__)


class MediaPlayer(Protocol):
    """The playable-media handle the controller drives (see MpvMediaPlayer)."""

    position: float
    duration: float
    paused: bool

    def set_listener(self, listener: Any) -> None: ...

    def load(self, uri: str, start: float = 0.0) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def set_volume(self, volume: float) -> None: ...


class PlaybackController:
    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        event_bus: EventBus,
        player: MediaPlayer,
        api: MusicApiClient,
        initial_volume: float = 0.75,
        restart_threshold_s: float = 3.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._loop = loop
        self._event_bus = event_bus
        self._player = player
        self._api = api
        self._restart_threshold_s = restart_threshold_s
        self._rng = rng or random.Random()

        self._song: Optional[Song] = None
        self._queue: List[Song] = []
        self._index = 0
        self._shuffle = False
        self._repeat = False
        self._ghost_mode = False
        self._is_playing = False
        self._position = 0.0
        self._duration = 0.0
        self._volume = max(0.0, min(1.0, initial_volume))
        self._pre_mute_volume = self._volume
        # Set once the current song's listening time has been reported.
        self._play_recorded = False

        self._last_pub_state: Optional[dict] = None
        self._last_pub_play_state: Optional[dict] = None
        self._last_pub_position: Optional[tuple] = None

        self._player.set_volume(self._volume)
        self._player.set_listener(self._on_media_event)

    # ---------------------------------------------------------------------
    # Read-only state
    # ---------------------------------------------------------------------

    @property
    def current_song(self) -> Optional[Song]:
        return self._song

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def position(self) -> float:
        """Elapsed seconds in the current song, read from the player."""
        if self._song is None:
            return 0.0
        return self._player.position

    @property
    def duration(self) -> float:
        return self._duration or (self._song.duration if self._song else 0.0)

    @property
    def ghost_mode(self) -> bool:
        return self._ghost_mode

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            song=self._song,
            is_playing=self._is_playing,
            position=self._position,
            duration=self.duration,
            volume=self._volume,
            queue=list(self._queue),
            index=self._index,
            shuffle=self._shuffle,
            repeat=self._repeat,
            ghost_mode=self._ghost_mode,
        )

    # ---------------------------------------------------------------------
    # Event emission
    # ---------------------------------------------------------------------

    def _emit_state(self) -> None:
        payload = self.state.as_payload()
        if payload == self._last_pub_state:
            return
        self._last_pub_state = payload
        self._event_bus.publish(TOPIC_PLAYBACK_STATE, payload)

        play_state = {
            "song_id": self._song.id if self._song else None,
            "is_playing": self._is_playing,
        }
        if play_state != self._last_pub_play_state:
            self._last_pub_play_state = play_state
            self._event_bus.publish(TOPIC_PLAY_STATE, play_state)

    def _emit_position(self) -> None:
        # Time updates arrive many times a second; keep them off playback_state.
        key = (self._song.id if self._song else None, round(self._position, 1))
        if key == self._last_pub_position:
            return
        self._last_pub_position = key

        duration = self.duration
        self._event_bus.publish(TOPIC_PLAYBACK_POSITION, {
            "song_id": key[0],
            "position": self._position,
            "duration": duration,
            "progress": (self._position / duration) * 100 if duration > 0 else 0.0,
        })

    # ---------------------------------------------------------------------
    # Songs and queue
    # ---------------------------------------------------------------------

    def play_song(self, song: Song) -> None:
        """Load and start a song.

        The caller has already checked song.is_playable (and offered a
        purchase otherwise); it is not checked again here.
        """
        if self._song is not None and not self._play_recorded and self.position > 0:
            self.record_play()

        self._load(song)
        self._player.play()
        self._emit_state()

    def set_queue(self, songs: Sequence[Song], start_index: int = 0, autoplay: bool = True) -> None:
        self._queue = list(songs)
        self._index = max(0, min(start_index, len(self._queue) - 1)) if self._queue else 0
        if autoplay and self._queue:
            self.play_song(self._queue[self._index])
        else:
            self._emit_state()

    def next(self) -> None:
        index = self._find_playable(1)
        if index is None:
            _LOGGER.debug("next(): no playable song in queue")
            return
        self._index = index
        self.play_song(self._queue[index])

    def previous(self) -> None:
        if self._song is not None and self.position > self._restart_threshold_s:
            self.seek(0)
            return

        index = self._find_playable(-1)
        if index is None:
            _LOGGER.debug("previous(): no playable song in queue")
            return
        self._index = index
        self.play_song(self._queue[index])

    def _find_playable(self, direction: int) -> Optional[int]:
        """Next queue index in `direction` whose song is playable, or None."""
        size = len(self._queue)
        if size == 0:
            return None

        if self._shuffle:
            candidates = [
                i for i, song in enumerate(self._queue)
                if i != self._index and song.is_playable
            ]
            if candidates:
                return self._rng.choice(candidates)
            # Nothing else is playable: same outcome as a full lap.
            current = self._queue[self._index] if self._index < size else None
            return self._index if current is not None and current.is_playable else None

        for step in range(1, size + 1):
            index = (self._index + direction * step) % size
            if self._queue[index].is_playable:
                return index
        return None

    # ---------------------------------------------------------------------
    # Transport
    # ---------------------------------------------------------------------

    def play(self) -> None:
        if self._song is not None:
            self._player.play()

    def pause(self) -> None:
        self._player.pause()

    def toggle_play_pause(self) -> None:
        if self._is_playing:
            self.pause()
        else:
            self.play()

    def seek(self, seconds: float) -> None:
        seconds = max(0.0, float(seconds))
        self._player.seek(seconds)
        self._position = seconds
        self._emit_state()

    def seek_to_percent(self, percent: float) -> None:
        self.seek((percent / 100) * self.duration)

    def set_volume(self, volume: float) -> None:
        self._volume = max(0.0, min(1.0, float(volume)))
        self._player.set_volume(self._volume)
        self._emit_state()

    def toggle_mute(self) -> None:
        if self._volume > 0:
            self._pre_mute_volume = self._volume
            self.set_volume(0)
        else:
            self.set_volume(self._pre_mute_volume)

    def toggle_shuffle(self) -> None:
        self._shuffle = not self._shuffle
        self._emit_state()

    def toggle_repeat(self) -> None:
        self._repeat = not self._repeat
        self._emit_state()

    # ---------------------------------------------------------------------
    # Ghost mode
    # ---------------------------------------------------------------------

    def set_ghost_mode(self, enabled: bool) -> None:
        self._ghost_mode = bool(enabled)
        _LOGGER.info("Ghost mode %s", "on" if self._ghost_mode else "off")
        self._emit_state()

    def load_remote_song(self, song: Song, position: float, paused: bool) -> None:
        """Switch to the broadcaster's song at `position`, mirroring pause."""
        self._load(song, start=position)
        if paused:
            self._player.pause()
        else:
            self._player.play()
        self._emit_state()

    # ---------------------------------------------------------------------
    # Telemetry
    # ---------------------------------------------------------------------

    def record_play(self) -> None:
        """Report listening time for the current song (best effort)."""
        song = self._song
        if song is None:
            return
        seconds = math.floor(self.position)
        self._play_recorded = True
        fire_and_forget(
            self._loop,
            self._api.record_play(song.id, seconds),
            f"record play {song.id}",
        )

    # ---------------------------------------------------------------------
    # Media notifications
    # ---------------------------------------------------------------------

    def _load(self, song: Song, start: float = 0.0) -> None:
        self._song = song
        self._play_recorded = False
        self._position = max(0.0, start)
        self._duration = song.duration
        self._player.load(self._api.stream_url(song.id), start=self._position)
        self._player.set_volume(self._volume)
        _LOGGER.debug("Loaded song %s at %.1fs", song.id, self._position)

    def _on_media_event(self, event: MediaEvent, value: Any = None) -> None:
        if event == MediaEvent.TIME_UPDATE:
            self._position = float(value or 0.0)
            self._emit_position()
            return

        if event == MediaEvent.LOADED_METADATA:
            self._duration = float(value or 0.0)
        elif event == MediaEvent.PLAY:
            self._is_playing = True
        elif event == MediaEvent.PAUSE:
            self._is_playing = False
        elif event == MediaEvent.ENDED:
            self._handle_ended()
            return
        self._emit_state()

    def _handle_ended(self) -> None:
        if self._ghost_mode:
            # The sync loop decides what plays next.
            _LOGGER.debug("Song ended in ghost mode; waiting for next sync")
            self._emit_state()
            return

        self.record_play()
        if self._repeat:
            # The player may have released the finished source; load it again.
            self._load(self._song)
            self._player.play()
            self._emit_state()
        else:
            self.next()
