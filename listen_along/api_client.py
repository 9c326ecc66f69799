"""
Music service REST client.

The sync core only needs a handful of request/response calls:
- resolve a song's metadata (ghost mode song switch)
- fetch / publish a live playback snapshot
- record listening time
- set the "live" listening status

Every response is wrapped as {"data": ...}; callers get the unwrapped payload.
Transport errors, timeouts and HTTP errors all surface as ApiError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from .errors import ApiError, NotFoundError
from .models import PlaybackSnapshot, Song

_LOGGER = logging.getLogger(__name__)

LIVE_STATUS_PREFIX = "🔴 LIVE: "


class MusicApiClient:
    def __init__(
        self,
        *,
        session: aiohttp.ClientSession,
        base_url: str,
        token_provider: Callable[[], Optional[str]],
        timeout_s: float = 10.0,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    # ---------------------------------------------------------------------
    # URLs
    # ---------------------------------------------------------------------

    @property
    def base_url(self) -> str:
        return self._base_url

    def stream_url(self, song_id: str) -> str:
        return f"{self._base_url}/songs/{quote(str(song_id), safe='')}/stream"

    def event_stream_url(self, token: str) -> str:
        return f"{self._base_url}/sse/events?token={quote(token, safe='')}"

    def auth_headers(self) -> Dict[str, str]:
        token = self._token_provider()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    # ---------------------------------------------------------------------
    # Songs
    # ---------------------------------------------------------------------

    async def resolve_song(self, song_id: str) -> Song:
        data = await self._request("GET", f"/songs/{quote(str(song_id), safe='')}")
        if not isinstance(data, dict):
            raise NotFoundError(f"Song {song_id} not found")
        return Song.from_dict(data)

    async def record_play(self, song_id: str, seconds: int) -> None:
        # The endpoint takes a bare JSON integer as the body.
        await self._request("POST", f"/songs/{quote(str(song_id), safe='')}/play", json=int(seconds))

    # ---------------------------------------------------------------------
    # Live playback
    # ---------------------------------------------------------------------

    async def fetch_playback_snapshot(self, broadcaster_id: str) -> PlaybackSnapshot:
        data = await self._request("GET", f"/users/{quote(str(broadcaster_id), safe='')}/playback")
        if not isinstance(data, dict):
            return PlaybackSnapshot(broadcaster_id=str(broadcaster_id))
        return PlaybackSnapshot.from_dict(data, broadcaster_id=broadcaster_id)

    async def publish_playback_snapshot(self, song_id: Optional[str], position: float, is_paused: bool) -> None:
        await self._request(
            "POST",
            "/users/me/playback",
            json={"songId": song_id, "position": float(position), "isPaused": bool(is_paused)},
        )

    async def set_live_status(self, genre: Optional[str]) -> None:
        """Mark the current user live with a genre, or clear it with None."""
        status = f"{LIVE_STATUS_PREFIX}{genre}" if genre else None
        await self._request("POST", "/users/me/status", json={"status": status})

    # ---------------------------------------------------------------------
    # Social
    # ---------------------------------------------------------------------

    async def get_friends(self) -> List[Dict[str, Any]]:
        return await self._get_list("/friends")

    async def get_pending_requests(self) -> List[Dict[str, Any]]:
        return await self._get_list("/friends/requests")

    async def get_live_friends(self) -> List[Dict[str, Any]]:
        return await self._get_list("/friends/live")

    # ---------------------------------------------------------------------
    # Transport
    # ---------------------------------------------------------------------

    async def _get_list(self, endpoint: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", endpoint)
        return list(data) if isinstance(data, list) else []

    async def _request(self, method: str, endpoint: str, *, json: Any = None) -> Any:
        url = f"{self._base_url}{endpoint}"
        headers = {"Content-Type": "application/json", **self.auth_headers()}
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": self._timeout}
        if json is not None or method != "GET":
            kwargs["json"] = json

        _LOGGER.debug("%s %s", method, url)
        try:
            async with self._session.request(method, url, **kwargs) as resp:
                if resp.status == 404:
                    raise NotFoundError(f"{method} {endpoint}: not found", status=resp.status)
                if resp.status >= 400:
                    text = await resp.text()
                    raise ApiError(f"{method} {endpoint}: {text[:200] or resp.reason}", status=resp.status)
                if resp.status == 204 or resp.content_length == 0:
                    return None
                body = await resp.json(content_type=None)
        except ApiError:
            raise
        except asyncio.TimeoutError as e:
            raise ApiError(f"{method} {endpoint}: timed out") from e
        except (aiohttp.ClientError, ValueError) as e:
            raise ApiError(f"{method} {endpoint}: {e}") from e

        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body
