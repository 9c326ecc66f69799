"""Tests for the music service REST client against a local aiohttp server."""

import asyncio

import aiohttp
import pytest
from aiohttp import test_utils, web

from listen_along.api_client import MusicApiClient
from listen_along.errors import ApiError, NotFoundError


def build_app(received: list) -> web.Application:
    async def get_song(request: web.Request) -> web.Response:
        song_id = request.match_info["song_id"]
        if song_id != "s1":
            return web.json_response({"message": "missing"}, status=404)
        return web.json_response({
            "data": {
                "id": "s1",
                "title": "Blue",
                "duration": "00:03:25",
                "isFree": False,
                "isPurchased": True,
                "artist": {"name": "Ann"},
            }
        })

    async def record_play(request: web.Request) -> web.Response:
        received.append(("play", request.match_info["song_id"], await request.text()))
        return web.Response(status=204)

    async def get_playback(request: web.Request) -> web.Response:
        received.append(("auth", request.headers.get("Authorization")))
        return web.json_response({
            "data": {
                "userId": request.match_info["user_id"],
                "isLive": True,
                "songId": "s1",
                "position": 40,
                "isPaused": False,
                "updatedAt": "2024-05-01T12:00:00.1234567Z",
            }
        })

    async def post_playback(request: web.Request) -> web.Response:
        received.append(("playback", await request.json()))
        return web.json_response({"data": None})

    async def post_status(request: web.Request) -> web.Response:
        received.append(("status", await request.json()))
        return web.json_response({"data": None})

    async def get_friends(request: web.Request) -> web.Response:
        return web.json_response({"data": [{"id": "f1"}, {"id": "f2"}]})

    async def broken(request: web.Request) -> web.Response:
        return web.Response(status=500, text="boom")

    app = web.Application()
    app.router.add_get("/api/songs/{song_id}", get_song)
    app.router.add_post("/api/songs/{song_id}/play", record_play)
    app.router.add_get("/api/users/{user_id}/playback", get_playback)
    app.router.add_post("/api/users/me/playback", post_playback)
    app.router.add_post("/api/users/me/status", post_status)
    app.router.add_get("/api/friends", get_friends)
    app.router.add_get("/api/friends/requests", broken)
    return app


def run_with_client(check, token="secret"):
    received: list = []

    async def scenario():
        async with test_utils.TestServer(build_app(received)) as server:
            async with aiohttp.ClientSession() as session:
                client = MusicApiClient(
                    session=session,
                    base_url=str(server.make_url("/api")) + "/",
                    token_provider=lambda: token,
                    timeout_s=5.0,
                )
                await check(client)

    asyncio.run(scenario())
    return received


def test_urls() -> None:
    async def check(client: MusicApiClient):
        assert client.base_url.endswith("/api")
        assert client.stream_url("a b").endswith("/api/songs/a%20b/stream")
        assert client.event_stream_url("t/k").endswith("/api/sse/events?token=t%2Fk")
        assert client.auth_headers() == {"Authorization": "Bearer secret"}

    run_with_client(check)


def test_resolve_song_unwraps_data() -> None:
    async def check(client: MusicApiClient):
        song = await client.resolve_song("s1")
        assert song.title == "Blue"
        assert song.duration == 205.0
        assert song.artist_name == "Ann"
        assert song.is_playable

    run_with_client(check)


def test_resolve_missing_song_raises_not_found() -> None:
    async def check(client: MusicApiClient):
        with pytest.raises(NotFoundError) as info:
            await client.resolve_song("nope")
        assert info.value.status == 404

    run_with_client(check)


def test_record_play_posts_bare_integer() -> None:
    async def check(client: MusicApiClient):
        assert await client.record_play("s1", 42) is None

    received = run_with_client(check)
    assert received == [("play", "s1", "42")]


def test_fetch_playback_snapshot() -> None:
    async def check(client: MusicApiClient):
        snapshot = await client.fetch_playback_snapshot("host")
        assert snapshot.broadcaster_id == "host"
        assert snapshot.is_syncable
        assert snapshot.position == 40.0
        assert snapshot.updated_at == pytest.approx(1714564800.123456)

    received = run_with_client(check)
    assert received == [("auth", "Bearer secret")]


def test_publish_and_live_status_bodies() -> None:
    async def check(client: MusicApiClient):
        await client.publish_playback_snapshot("s1", 12.5, True)
        await client.set_live_status("jazz")
        await client.set_live_status(None)

    received = run_with_client(check)
    assert received == [
        ("playback", {"songId": "s1", "position": 12.5, "isPaused": True}),
        ("status", {"status": "🔴 LIVE: jazz"}),
        ("status", {"status": None}),
    ]


def test_lists_and_server_errors() -> None:
    async def check(client: MusicApiClient):
        assert await client.get_friends() == [{"id": "f1"}, {"id": "f2"}]
        with pytest.raises(ApiError) as info:
            await client.get_pending_requests()
        assert info.value.status == 500
        assert "boom" in str(info.value)

    run_with_client(check)


def test_transport_error_becomes_api_error() -> None:
    async def scenario():
        async with aiohttp.ClientSession() as session:
            client = MusicApiClient(
                session=session,
                # Port 9 (discard) is closed on test machines.
                base_url="http://127.0.0.1:9/api",
                token_provider=lambda: None,
                timeout_s=2.0,
            )
            with pytest.raises(ApiError):
                await client.get_friends()
            assert client.auth_headers() == {}

    asyncio.run(scenario())
