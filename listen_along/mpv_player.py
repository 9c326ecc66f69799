"""
Media player backed by libmpv (python-mpv).

This wrapper is the opaque playable-media handle the playback controller drives:
- load(uri, start) / play / pause / seek / set_volume
- position, duration and paused readouts
- notifications (timeupdate, loadedmetadata, ended, play, pause) delivered to a
  single listener on the asyncio loop

mpv calls property observers from its own event thread; every notification is
handed to the loop with call_soon_threadsafe.

If a specific audio device is provided, it is passed directly to mpv as
`audio-device`. Otherwise, mpv's own automatic backend/device selection is used.
"""
from __future__ import annotations

import asyncio
import logging
import os
from threading import Lock
from typing import Any, Callable, Dict, Optional

# Note: python-mpv must be installed; imported at runtime.
from mpv import MPV

from .models import MediaEvent

_LOGGER = logging.getLogger(__name__)

MediaListener = Callable[[MediaEvent, Any], None]


class MpvMediaPlayer:
    """A media player class that wraps the python-mpv library."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop],
        device: Optional[str] = None,
        initial_volume: float = 1.0,
        http_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        :param loop: The asyncio loop notifications are delivered on.
                     May be None in one-off utility contexts (e.g. listing devices).
        :param device: Optional mpv audio device name (e.g. "pulse/alsa_output.pci-0000_00_1f.3.analog-stereo").
        :param initial_volume: Initial volume as a float 0.0–1.0.
        :param http_headers: Extra HTTP headers for stream requests (e.g. Authorization).
        """
        self.loop = loop

        self.player = MPV(
            video=False,
            terminal=False,
            log_handler=self._mpv_log,
            keep_open="no",
            idle="yes",
            network_timeout=7,
            msg_level=os.environ.get("LISTEN_ALONG_MPV_MSG_LEVEL", "all=warn"),
        )

        # Optional: allow forcing ao via environment for power users/debugging.
        ao_env = os.environ.get("LISTEN_ALONG_AO")
        if ao_env:
            try:
                self.player["ao"] = ao_env
                _LOGGER.info("Forcing mpv ao=%r from LISTEN_ALONG_AO", ao_env)
            except Exception:
                _LOGGER.exception("Failed to set mpv ao=%r", ao_env)

        # If the caller provided a specific device, honor it directly.
        if device:
            try:
                self.player["audio-device"] = device
                _LOGGER.info("Using mpv audio-device=%r", device)
            except Exception:
                _LOGGER.exception("Failed to set mpv audio-device %r", device)

        if http_headers:
            try:
                self.player["http-header-fields"] = [f"{k}: {v}" for k, v in http_headers.items()]
            except Exception:
                _LOGGER.exception("Failed to set mpv http-header-fields")

        self._listener: Optional[MediaListener] = None
        self._listener_lock = Lock()

        # True between load() and end of file; guards the idle -> ended mapping.
        self._loaded = False
        self._paused = True

        self.set_volume(initial_volume)

        self.player.observe_property("time-pos", self._on_time_pos)
        self.player.observe_property("duration", self._on_duration)
        # When mpv becomes idle after a file, we treat it as end-of-playback.
        self.player.observe_property("idle-active", self._on_idle_active)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def set_listener(self, listener: Optional[MediaListener]) -> None:
        with self._listener_lock:
            self._listener = listener

    @property
    def position(self) -> float:
        try:
            return float(self.player.time_pos or 0.0)
        except Exception:
            return 0.0

    @property
    def duration(self) -> float:
        try:
            return float(self.player.duration or 0.0)
        except Exception:
            return 0.0

    @property
    def paused(self) -> bool:
        return self._paused

    def load(self, uri: str, start: float = 0.0) -> None:
        """Replaces the current source. Playback stays paused until play()."""
        self._set_paused(True)
        try:
            self.player.pause = True
            if start > 0:
                self.player.loadfile(uri, "replace", start=f"{start:.3f}")
            else:
                self.player.loadfile(uri, "replace")
            self._loaded = True
        except Exception:
            _LOGGER.exception("Failed to load %s", uri)
            self._loaded = False

    def play(self) -> None:
        """Starts or resumes playback."""
        if not self._loaded:
            return
        try:
            self.player.pause = False
        except Exception:
            _LOGGER.exception("play() failed")
            return
        self._set_paused(False)

    def pause(self) -> None:
        """Pauses playback."""
        try:
            self.player.pause = True
        except Exception:
            _LOGGER.exception("pause() failed")
            return
        self._set_paused(True)

    def seek(self, seconds: float) -> None:
        """Jumps to an absolute position in seconds."""
        if not self._loaded:
            return
        try:
            self.player.seek(max(0.0, seconds), reference="absolute")
        except Exception:
            _LOGGER.exception("seek(%s) failed", seconds)

    def set_volume(self, volume: float) -> None:
        """Sets the player volume from 0.0 to 1.0."""
        try:
            self.player.volume = max(0, min(100, int(round(volume * 100))))
        except Exception:
            _LOGGER.exception("set_volume() failed")

    def terminate(self) -> None:
        self.set_listener(None)
        try:
            self.player.terminate()
        except Exception:
            _LOGGER.debug("mpv terminate failed", exc_info=True)

    # -------------------------------------------------------------------------
    # Internal callbacks
    # -------------------------------------------------------------------------

    def _set_paused(self, paused: bool) -> None:
        if paused == self._paused:
            return
        self._paused = paused
        self._notify(MediaEvent.PAUSE if paused else MediaEvent.PLAY, None)

    def _on_time_pos(self, _name: str, value: Optional[float]) -> None:
        if value is not None:
            self._notify(MediaEvent.TIME_UPDATE, float(value))

    def _on_duration(self, _name: str, value: Optional[float]) -> None:
        if value:
            self._notify(MediaEvent.LOADED_METADATA, float(value))

    def _on_idle_active(self, _name: str, active: bool) -> None:
        """Callback triggered when mpv enters or leaves the idle state."""
        if active and self._loaded:
            _LOGGER.debug("mpv became idle; treating as end-of-playback")
            self._loaded = False
            self._paused = True
            self._notify(MediaEvent.PAUSE, None)
            self._notify(MediaEvent.ENDED, None)

    def _notify(self, event: MediaEvent, value: Any) -> None:
        """Runs the listener on the main asyncio loop (if any)."""
        with self._listener_lock:
            listener = self._listener
        if listener is None:
            return

        if self.loop is not None:
            try:
                self.loop.call_soon_threadsafe(listener, event, value)
            except RuntimeError:
                # Loop already closed during shutdown.
                _LOGGER.debug("Dropping %s notification; loop closed", event.value)
        else:
            try:
                listener(event, value)
            except Exception:
                _LOGGER.exception("Error running media listener directly")

    def _mpv_log(self, level: str, prefix: str, text: str) -> None:
        """Routes mpv's internal logs to our logger."""
        msg = f"mpv[{prefix}]: {text}".rstrip()
        if level == "error":
            _LOGGER.error(msg)
        elif level == "warn":
            _LOGGER.warning(msg)
        elif level == "info":
            _LOGGER.info(msg)
        else:
            _LOGGER.debug(msg)
