#!/usr/bin/env python3
"""
Server-push event stream client (server -> listen-along)

- One logical connection: GET {api}/sse/events?token=... (text/event-stream)
- Named events are parsed and republished on their own EventBus topic:
    connected     -> stream_connected
    heartbeat     -> heartbeat       {timestamp}
    friendRequest -> friend_request  {action}
    friends       -> friends         {action}
    liveUsers     -> live_users      {userId, username, action, genre}
  Each delivery is scheduled as its own loop callback, so subscribers of one
  topic never hold up the reader or another topic.
- Reconnect with exponential backoff: delay = min(base * 2^attempt, cap).
  After max_attempts consecutive failures the client stops and reports a
  terminal disconnection until connect() is called again.
- Foreground/background: backgrounding disconnects and cancels timers;
  foregrounding resets the attempt counter and connects immediately.
- Publishes stream_connection_state on every StreamConnection change.
- Event framing comes from aiohttp-sse-client2. Its own reconnect logic is
  switched off; every retry decision is made here.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Protocol

import aiohttp
from aiohttp_sse_client2 import client as sse_client

from .config import StreamConfig
from .errors import ApiError
from .event_bus import EventBus
from .models import (
    STREAM_TOPICS,
    TOPIC_STREAM_CONNECTION_STATE,
    StreamConnection,
    StreamState,
)
from .util import fire_and_forget

_LOGGER = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_s: float, cap_s: float) -> float:
    """Delay before reconnect number `attempt` (0-based)."""
    return min(base_s * (2 ** attempt), cap_s)


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerSentEvent:
    event: str
    data: str
    id: Optional[str] = None


class EventSource(Protocol):
    """An open push connection."""

    def events(self) -> AsyncIterator[ServerSentEvent]: ...

    def close(self) -> None: ...


class SseConnection:
    """A text/event-stream response read through aiohttp-sse-client2."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        *,
        timeout: aiohttp.ClientTimeout,
    ) -> None:
        self._opened = False
        self._closed = False
        self._source = sse_client.EventSource(
            url,
            session=session,
            max_connect_retry=0,
            on_error=self._on_error,
            timeout=timeout,
        )

    def _on_error(self) -> None:
        # Called by the library when the stream drops, right before it would
        # sleep and reconnect on its own. Raising ends the iteration instead.
        if self._opened:
            raise ApiError("event stream: connection lost")

    async def open(self) -> None:
        try:
            await self._source.connect()
        except asyncio.TimeoutError as e:
            raise ApiError("event stream: connect timed out") from e
        except (ConnectionError, aiohttp.ClientError) as e:
            raise ApiError(f"event stream: {e}") from e
        self._opened = True

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        try:
            async for message in self._source:
                yield ServerSentEvent(
                    event=message.type or "message",
                    data=message.data,
                    id=message.last_event_id or None,
                )
        except asyncio.TimeoutError as e:
            raise ApiError("event stream: no data within the read timeout") from e
        except aiohttp.ClientError as e:
            raise ApiError(f"event stream: {e}") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        fire_and_forget(asyncio.get_running_loop(), self._source.close(), "close event stream")


async def open_event_stream(
    session: aiohttp.ClientSession,
    url: str,
    *,
    connect_timeout_s: float = 10.0,
    read_timeout_s: Optional[float] = 90.0,
) -> SseConnection:
    """Open the stream. Raises ApiError unless the server answers 200 with an event stream."""
    # No total timeout: the response is meant to stay open. The read timeout
    # turns a silent half-open connection into a disconnect.
    timeout = aiohttp.ClientTimeout(
        total=None,
        sock_connect=connect_timeout_s,
        sock_read=read_timeout_s,
    )
    connection = SseConnection(session, url, timeout=timeout)
    await connection.open()
    return connection

# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class EventStreamClient:
    """
    Keeps one push connection to the server alive and fans its events out
    onto the EventBus.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        event_bus: EventBus,
        config: StreamConfig,
        credential_provider: Callable[[], Optional[str]],
        opener: Callable[[str], Awaitable[EventSource]],
    ) -> None:
        self._loop = loop
        self._event_bus = event_bus
        self._cfg = config
        self._credential_provider = credential_provider
        self._opener = opener

        self._conn = StreamConnection(reconnect_delay=config.base_delay_seconds)
        self._last_pub_state: Optional[dict] = None

        self._source: Optional[EventSource] = None
        self._session_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._foreground = True

    # ---------------------------------------------------------------------
    # State
    # ---------------------------------------------------------------------

    @property
    def connection(self) -> StreamConnection:
        return self._conn

    @property
    def connected(self) -> bool:
        return self._conn.state == StreamState.CONNECTED

    @property
    def foreground(self) -> bool:
        return self._foreground

    def _emit_connection_state(self) -> None:
        payload = self._conn.as_payload()
        if payload == self._last_pub_state:
            return
        self._last_pub_state = payload
        self._event_bus.publish(TOPIC_STREAM_CONNECTION_STATE, payload)

    def _set_state(self, state: StreamState) -> None:
        if self._conn.state != state:
            _LOGGER.debug("Event stream: %s -> %s", self._conn.state.value, state.value)
        self._conn.state = state
        self._emit_connection_state()

    # ---------------------------------------------------------------------
    # Public control
    # ---------------------------------------------------------------------

    def connect(self) -> None:
        """Open the connection unless one is open or being opened."""
        if self._session_task is not None or self._source is not None:
            return

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        if self._conn.terminal:
            # An explicit connect() after giving up starts a fresh budget.
            self._conn.terminal = False
            self._conn.reconnect_attempt = 0
            self._conn.reconnect_delay = self._cfg.base_delay_seconds

        token = self._credential_provider()
        if not token:
            _LOGGER.debug("Event stream: no credential available")
            self._handle_disconnect()
            return

        self._set_state(StreamState.CONNECTING)
        self._session_task = self._loop.create_task(self._run_session(token), name="event-stream")

    def disconnect(self) -> None:
        """Close the connection and cancel any pending reconnect."""
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        source = self._source
        self._source = None
        if source is not None:
            try:
                source.close()
            except Exception:
                _LOGGER.debug("Event stream: close failed", exc_info=True)

        task = self._session_task
        self._session_task = None
        if task is not None and not task.done():
            task.cancel()

        self._conn.reconnect_attempt = 0
        self._conn.reconnect_delay = self._cfg.base_delay_seconds
        self._set_state(StreamState.DISCONNECTED)

    def set_foreground(self, foreground: bool) -> None:
        """Pause the stream while backgrounded; resume when foregrounded."""
        foreground = bool(foreground)
        if foreground == self._foreground:
            return
        self._foreground = foreground

        if not foreground:
            _LOGGER.debug("Event stream: backgrounded; disconnecting")
            self.disconnect()
            return

        _LOGGER.debug("Event stream: foregrounded; reconnecting")
        self._conn.reconnect_attempt = 0
        self._conn.reconnect_delay = self._cfg.base_delay_seconds
        self._conn.terminal = False
        self.connect()

    # ---------------------------------------------------------------------
    # Session
    # ---------------------------------------------------------------------

    async def _run_session(self, token: str) -> None:
        current = asyncio.current_task()
        try:
            source = await self._opener(token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _LOGGER.warning("Event stream: connection failed: %s", e)
            _LOGGER.debug("Event stream: connection failure detail", exc_info=True)
            self._session_ended(current)
            return

        if self._session_task is not current:
            # disconnect() won the race while we were opening.
            source.close()
            return

        self._source = source
        self._conn.reconnect_attempt = 0
        self._conn.reconnect_delay = self._cfg.base_delay_seconds
        self._conn.terminal = False
        self._set_state(StreamState.CONNECTED)
        _LOGGER.info("Event stream: connected")

        try:
            async for event in source.events():
                self._dispatch(event)
            _LOGGER.info("Event stream: closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _LOGGER.warning("Event stream: connection lost: %s", e)
            _LOGGER.debug("Event stream: connection loss detail", exc_info=True)
        finally:
            if self._source is source:
                self._source = None
                source.close()

        self._session_ended(current)

    def _session_ended(self, task: Optional[asyncio.Task]) -> None:
        if self._session_task is not task:
            return
        self._session_task = None
        self._handle_disconnect()

    def _handle_disconnect(self) -> None:
        self._set_state(StreamState.DISCONNECTED)

        # No retries while backgrounded.
        if not self._foreground:
            return

        if self._conn.reconnect_attempt >= self._cfg.max_attempts:
            self._conn.terminal = True
            _LOGGER.error(
                "Event stream: giving up after %d reconnect attempts",
                self._conn.reconnect_attempt,
            )
            self._emit_connection_state()
            return

        delay = backoff_delay(
            self._conn.reconnect_attempt,
            self._cfg.base_delay_seconds,
            self._cfg.max_delay_seconds,
        )
        self._conn.reconnect_attempt += 1
        self._conn.reconnect_delay = delay
        _LOGGER.info(
            "Event stream: reconnecting in %.1fs (attempt %d)",
            delay,
            self._conn.reconnect_attempt,
        )
        self._emit_connection_state()
        self._reconnect_handle = self._loop.call_later(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self.connect()

    # ---------------------------------------------------------------------
    # Dispatch
    # ---------------------------------------------------------------------

    def _dispatch(self, event: ServerSentEvent) -> None:
        topic = STREAM_TOPICS.get(event.event)
        if topic is None:
            _LOGGER.debug("Event stream: ignoring event %r", event.event)
            return

        payload = self._parse_payload(event)
        if payload is None:
            return

        if event.event == "connected":
            _LOGGER.debug("Event stream: server hello %s", payload)

        self._loop.call_soon(self._event_bus.publish, topic, payload)

    @staticmethod
    def _parse_payload(event: ServerSentEvent) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(event.data)
        except ValueError:
            if event.event == "connected":
                return {"message": event.data}
            _LOGGER.debug("Event stream: non-JSON %s payload: %r", event.event, event.data)
            return None

        if isinstance(data, dict):
            return data
        return {"value": data}
