"""Shared models: wire entities, live session roles and observable state."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .util import parse_timestamp

_LOGGER = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^(?:(\d+)\.)?(\d+):(\d{1,2}):(\d{1,2}(?:\.\d+)?)$")

# -----------------------------------------------------------------------------
# Event bus topics
# -----------------------------------------------------------------------------

# Server-push channels, keyed by the wire event name.
STREAM_TOPICS: Dict[str, str] = {
    "connected": "stream_connected",
    "heartbeat": "heartbeat",
    "friendRequest": "friend_request",
    "friends": "friends",
    "liveUsers": "live_users",
}

TOPIC_STREAM_CONNECTION_STATE = "stream_connection_state"
TOPIC_PLAYBACK_STATE = "playback_state"
TOPIC_PLAY_STATE = "playback_play_state"
TOPIC_PLAYBACK_POSITION = "playback_position"
TOPIC_LIVE_SESSION = "live_session"


def parse_duration(value: Any) -> float:
    """Parse a song duration ("hh:mm:ss[.fff]", "d.hh:mm:ss" or seconds)."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return max(0.0, float(value))

    match = _DURATION_RE.match(str(value).strip())
    if not match:
        _LOGGER.debug("Unrecognized duration %r", value)
        return 0.0

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * 86400
        + int(hours) * 3600
        + int(minutes) * 60
        + float(seconds)
    )


# -----------------------------------------------------------------------------
# Wire entities
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Song:
    """A song as served by the music API. Read-only to this client."""
    id: str
    title: str = ""
    duration: float = 0.0
    is_free: bool = True
    is_purchased: bool = False
    price: float = 0.0
    artist_name: Optional[str] = None
    cover_art: Optional[str] = None

    @property
    def is_playable(self) -> bool:
        """Free songs and purchased songs may be played."""
        return self.is_free or self.is_purchased

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Song":
        artist = data.get("artist") or {}
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            duration=parse_duration(data.get("duration")),
            is_free=bool(data.get("isFree", True)),
            is_purchased=bool(data.get("isPurchased", False)),
            price=float(data.get("price") or 0.0),
            artist_name=artist.get("name") if isinstance(artist, dict) else None,
            cover_art=data.get("coverArt"),
        )


@dataclass(frozen=True)
class PlaybackSnapshot:
    """A broadcaster's last published playback state."""
    broadcaster_id: str
    is_live: bool = False
    song_id: Optional[str] = None
    position: float = 0.0
    is_paused: bool = False
    # Epoch seconds; None when the server did not report it.
    updated_at: Optional[float] = None
    username: Optional[str] = None
    song_title: Optional[str] = None
    song_artist: Optional[str] = None
    song_cover_art: Optional[str] = None

    @property
    def is_syncable(self) -> bool:
        return self.is_live and bool(self.song_id)

    def effective_position(self, now: float) -> float:
        """Extrapolate where the broadcaster is at `now` (epoch seconds)."""
        if self.is_paused or self.updated_at is None:
            return self.position
        return self.position + max(0.0, now - self.updated_at)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], broadcaster_id: Optional[str] = None) -> "PlaybackSnapshot":
        return cls(
            broadcaster_id=str(data.get("userId") or broadcaster_id or ""),
            is_live=bool(data.get("isLive", False)),
            song_id=data.get("songId") or None,
            position=max(0.0, float(data.get("position") or 0.0)),
            is_paused=bool(data.get("isPaused", False)),
            updated_at=parse_timestamp(data.get("updatedAt")),
            username=data.get("username"),
            song_title=data.get("songTitle"),
            song_artist=data.get("songArtist"),
            song_cover_art=data.get("songCoverArt"),
        )


# -----------------------------------------------------------------------------
# Live session
# -----------------------------------------------------------------------------

class LiveRole(str, Enum):
    NONE = "none"
    BROADCASTER = "broadcaster"
    LISTENER = "listener"


@dataclass
class LiveSessionState:
    role: LiveRole = LiveRole.NONE
    broadcaster_id: Optional[str] = None  # set only for LISTENER
    genre: Optional[str] = None  # set only for BROADCASTER

    def as_payload(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "broadcaster_id": self.broadcaster_id,
            "genre": self.genre,
        }


# -----------------------------------------------------------------------------
# Event stream connection
# -----------------------------------------------------------------------------

class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class StreamConnection:
    state: StreamState = StreamState.DISCONNECTED
    reconnect_attempt: int = 0
    reconnect_delay: float = 1.0
    # True once the reconnect budget is spent; cleared by an explicit connect().
    terminal: bool = False

    def as_payload(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "reconnect_attempt": self.reconnect_attempt,
            "reconnect_delay": self.reconnect_delay,
            "terminal": self.terminal,
        }


# -----------------------------------------------------------------------------
# Playback
# -----------------------------------------------------------------------------

class MediaEvent(str, Enum):
    """Notifications emitted by a media player."""
    TIME_UPDATE = "timeupdate"
    LOADED_METADATA = "loadedmetadata"
    ENDED = "ended"
    PLAY = "play"
    PAUSE = "pause"


@dataclass
class PlaybackState:
    """Observable playback state, published on every change."""
    song: Optional[Song] = None
    is_playing: bool = False
    position: float = 0.0
    duration: float = 0.0
    volume: float = 0.75
    queue: List[Song] = field(default_factory=list)
    index: int = 0
    shuffle: bool = False
    repeat: bool = False
    ghost_mode: bool = False

    @property
    def progress(self) -> float:
        """Position as a percentage of the duration."""
        return (self.position / self.duration) * 100 if self.duration > 0 else 0.0

    def as_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["song_id"] = self.song.id if self.song else None
        payload["progress"] = self.progress
        return payload
