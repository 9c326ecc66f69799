"""Tests for wire models and small helpers."""

import pytest

from listen_along.models import (
    PlaybackSnapshot,
    PlaybackState,
    Song,
    StreamConnection,
    parse_duration,
)
from listen_along.util import format_time, parse_timestamp


def test_parse_duration_formats() -> None:
    assert parse_duration("00:03:25") == 205.0
    assert parse_duration("01:00:00.5") == 3600.5
    assert parse_duration("1.00:00:10") == 86410.0
    assert parse_duration(95) == 95.0
    assert parse_duration(None) == 0.0
    assert parse_duration("soon") == 0.0


def test_song_from_dict() -> None:
    song = Song.from_dict({
        "id": 12,
        "title": "Blue",
        "duration": "00:02:00",
        "isFree": False,
        "isPurchased": False,
        "price": "0.99",
        "artist": {"name": "Ann"},
        "coverArt": "/img/12.jpg",
    })

    assert song.id == "12"
    assert song.duration == 120.0
    assert song.price == 0.99
    assert song.artist_name == "Ann"
    assert not song.is_playable


def test_snapshot_from_dict() -> None:
    snapshot = PlaybackSnapshot.from_dict(
        {
            "isLive": True,
            "songId": "s1",
            "position": -3,
            "isPaused": True,
            "updatedAt": "2024-05-01T12:00:00Z",
            "username": "ann",
        },
        broadcaster_id="u1",
    )

    assert snapshot.broadcaster_id == "u1"
    assert snapshot.position == 0.0
    assert snapshot.updated_at == 1714564800.0
    assert snapshot.is_syncable


def test_snapshot_defaults_are_not_syncable() -> None:
    assert not PlaybackSnapshot(broadcaster_id="u1").is_syncable
    assert not PlaybackSnapshot(broadcaster_id="u1", song_id="s1").is_syncable


def test_playback_state_payload() -> None:
    state = PlaybackState(song=Song(id="s1", duration=200.0), position=50.0, duration=200.0)

    payload = state.as_payload()

    assert payload["song_id"] == "s1"
    assert payload["progress"] == 25.0
    assert PlaybackState().as_payload()["progress"] == 0.0


def test_stream_connection_payload() -> None:
    payload = StreamConnection().as_payload()
    assert payload == {
        "state": "disconnected",
        "reconnect_attempt": 0,
        "reconnect_delay": 1.0,
        "terminal": False,
    }


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2024-05-01T12:00:00Z", 1714564800.0),
        ("2024-05-01T12:00:00", 1714564800.0),
        ("2024-05-01T14:00:00+02:00", 1714564800.0),
        ("2024-05-01T12:00:00.5000000Z", 1714564800.5),
        ("yesterday", None),
        (None, None),
        ("", None),
    ],
)
def test_parse_timestamp(value, expected) -> None:
    assert parse_timestamp(value) == expected


def test_format_time() -> None:
    assert format_time(0) == "0:00"
    assert format_time(65.9) == "1:05"
    assert format_time(3600) == "60:00"
    assert format_time(float("nan")) == "0:00"
