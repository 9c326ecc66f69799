"""Keeps friend requests, friends and live friends current from stream events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .api_client import MusicApiClient
from .errors import ApiError
from .event_bus import EventBus, EventHandler, subscribe

_LOGGER = logging.getLogger(__name__)


class SocialFeed(EventHandler):
    """
    Each stream channel only says "something changed"; on every event the
    matching list is reloaded and republished:
      friend_request -> friend_requests_updated
      friends        -> friends_updated
      live_users     -> live_users_updated
    A failed reload keeps the previous list.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        event_bus: EventBus,
        api: MusicApiClient,
    ) -> None:
        self._loop = loop
        self._api = api
        self._lists: Dict[str, List[Dict[str, Any]]] = {
            "friend_requests": [],
            "friends": [],
            "live_users": [],
        }
        # One reload at a time per list; a newer event queues exactly one more.
        self._tasks: Dict[str, asyncio.Task] = {}
        self._dirty: Dict[str, bool] = {}
        super().__init__(event_bus)

    @property
    def pending_requests(self) -> List[Dict[str, Any]]:
        return list(self._lists["friend_requests"])

    @property
    def friend_list(self) -> List[Dict[str, Any]]:
        return list(self._lists["friends"])

    @property
    def live_friends(self) -> List[Dict[str, Any]]:
        return list(self._lists["live_users"])

    def refresh_all(self) -> None:
        self._schedule("friend_requests", self._api.get_pending_requests)
        self._schedule("friends", self._api.get_friends)
        self._schedule("live_users", self._api.get_live_friends)

    def close(self) -> None:
        self.unsubscribe_all()
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()

    # ---------------------------------------------------------------------
    # Stream channels
    # ---------------------------------------------------------------------

    @subscribe
    def friend_request(self, data: Optional[dict] = None) -> None:
        _LOGGER.debug("Friend request event: %s", (data or {}).get("action"))
        self._schedule("friend_requests", self._api.get_pending_requests)

    @subscribe
    def friends(self, data: Optional[dict] = None) -> None:
        _LOGGER.debug("Friends event: %s", (data or {}).get("action"))
        self._schedule("friends", self._api.get_friends)

    @subscribe
    def live_users(self, data: Optional[dict] = None) -> None:
        data = data or {}
        _LOGGER.debug(
            "Live users event: %s %s (%s)",
            data.get("username"),
            data.get("action"),
            data.get("genre"),
        )
        self._schedule("live_users", self._api.get_live_friends)

    # ---------------------------------------------------------------------
    # Reloads
    # ---------------------------------------------------------------------

    def _schedule(self, name: str, fetch: Callable[[], Awaitable[List[Dict[str, Any]]]]) -> None:
        task = self._tasks.get(name)
        if task is not None and not task.done():
            self._dirty[name] = True
            return
        self._tasks[name] = self._loop.create_task(self._reload(name, fetch))

    async def _reload(self, name: str, fetch: Callable[[], Awaitable[List[Dict[str, Any]]]]) -> None:
        while True:
            self._dirty[name] = False
            try:
                items = await fetch()
            except ApiError as e:
                _LOGGER.warning("Failed to reload %s: %s", name, e)
            else:
                self._lists[name] = items
                self.event_bus.publish(f"{name}_updated", {"items": list(items)})
            if not self._dirty.get(name):
                break
