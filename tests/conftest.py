"""Shared fakes for the listen-along tests."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from listen_along.errors import NotFoundError
from listen_along.event_bus import EventBus
from listen_along.models import MediaEvent, PlaybackSnapshot, Song
from listen_along.playback import PlaybackController


class FakeMediaPlayer:
    """In-memory media player; notifications are delivered synchronously."""

    def __init__(self) -> None:
        self.listener: Optional[Callable[[MediaEvent, Any], None]] = None
        self.uri: Optional[str] = None
        self.position = 0.0
        self.duration = 0.0
        self.paused = True
        self.volume: Optional[float] = None
        self.seeks: List[float] = []
        self.loads: List[tuple] = []

    def set_listener(self, listener) -> None:
        self.listener = listener

    def _notify(self, event: MediaEvent, value: Any = None) -> None:
        if self.listener is not None:
            self.listener(event, value)

    def load(self, uri: str, start: float = 0.0) -> None:
        self.uri = uri
        self.position = start
        self.loads.append((uri, start))
        if not self.paused:
            self.paused = True
            self._notify(MediaEvent.PAUSE)

    def play(self) -> None:
        if self.paused:
            self.paused = False
            self._notify(MediaEvent.PLAY)

    def pause(self) -> None:
        if not self.paused:
            self.paused = True
            self._notify(MediaEvent.PAUSE)

    def seek(self, seconds: float) -> None:
        self.position = seconds
        self.seeks.append(seconds)
        self._notify(MediaEvent.TIME_UPDATE, seconds)

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    # Test helpers

    def advance_to(self, seconds: float) -> None:
        self.position = seconds
        self._notify(MediaEvent.TIME_UPDATE, seconds)

    def finish(self) -> None:
        self.paused = True
        self._notify(MediaEvent.PAUSE)
        self._notify(MediaEvent.ENDED)


class FakeApi:
    """Stands in for MusicApiClient."""

    def __init__(self) -> None:
        self.songs: Dict[str, Song] = {}
        self.snapshot: Optional[PlaybackSnapshot] = None
        self.snapshot_error: Optional[Exception] = None
        self.resolve_error: Optional[Exception] = None
        self.publish_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        # When set, the matching call waits on it before answering.
        self.snapshot_gate: Optional[asyncio.Event] = None
        self.status_gate: Optional[asyncio.Event] = None

        self.published: List[tuple] = []
        self.plays: List[tuple] = []
        self.statuses: List[Optional[str]] = []
        self.fetches = 0
        self.resolves: List[str] = []

        self.friends: List[dict] = []
        self.requests: List[dict] = []
        self.live_friends: List[dict] = []
        self.friends_error: Optional[Exception] = None

    def stream_url(self, song_id: str) -> str:
        return f"http://api.test/songs/{song_id}/stream"

    def auth_headers(self) -> Dict[str, str]:
        return {}

    async def resolve_song(self, song_id: str) -> Song:
        self.resolves.append(song_id)
        if self.resolve_error is not None:
            raise self.resolve_error
        if song_id not in self.songs:
            raise NotFoundError(f"Song {song_id} not found", status=404)
        return self.songs[song_id]

    async def record_play(self, song_id: str, seconds: int) -> None:
        self.plays.append((song_id, seconds))

    async def fetch_playback_snapshot(self, broadcaster_id: str) -> PlaybackSnapshot:
        self.fetches += 1
        if self.snapshot_gate is not None:
            await self.snapshot_gate.wait()
        if self.snapshot_error is not None:
            raise self.snapshot_error
        return self.snapshot or PlaybackSnapshot(broadcaster_id=broadcaster_id)

    async def publish_playback_snapshot(self, song_id, position, is_paused) -> None:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((song_id, position, is_paused))

    async def set_live_status(self, genre: Optional[str]) -> None:
        if self.status_gate is not None:
            await self.status_gate.wait()
        if self.status_error is not None:
            raise self.status_error
        self.statuses.append(genre)

    async def get_friends(self) -> List[dict]:
        if self.friends_error is not None:
            raise self.friends_error
        return list(self.friends)

    async def get_pending_requests(self) -> List[dict]:
        return list(self.requests)

    async def get_live_friends(self) -> List[dict]:
        return list(self.live_friends)


class Recorder:
    """Collects EventBus payloads for one topic."""

    def __init__(self, event_bus: EventBus, topic: str) -> None:
        self.events: List[dict] = []
        event_bus.subscribe(topic, self.events.append)


def song(song_id: str, *, free: bool = True, purchased: bool = False, duration: float = 200.0) -> Song:
    return Song(id=song_id, title=f"Song {song_id}", duration=duration, is_free=free, is_purchased=purchased)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def media() -> FakeMediaPlayer:
    return FakeMediaPlayer()


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def make_playback(event_bus, media, api):
    """Builds a PlaybackController on the running loop."""

    def _make(**kwargs) -> PlaybackController:
        return PlaybackController(
            loop=asyncio.get_running_loop(),
            event_bus=event_bus,
            player=media,
            api=api,
            **kwargs,
        )

    return _make

