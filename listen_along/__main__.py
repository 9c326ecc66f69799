#!/usr/bin/env python3
import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import aiohttp

from .api_client import MusicApiClient
from .broadcast import BroadcastLoop
from .config import Config, load_config_from_json
from .event_bus import EventBus, EventHandler, subscribe
from .event_stream import EventStreamClient, open_event_stream
from .mpv_player import MpvMediaPlayer
from .playback import PlaybackController
from .session import LiveSession
from .social import SocialFeed
from .sync import SyncLoop

_LOGGER = logging.getLogger(__name__)
_MODULE_DIR = Path(__file__).parent
_REPO_DIR = _MODULE_DIR.parent

# -----------------------------------------------------------------------------

@dataclass
class Components:
    """Dataclass to hold the running components."""
    api: MusicApiClient
    player: MpvMediaPlayer
    playback: PlaybackController
    event_stream: EventStreamClient
    live: LiveSession
    social: SocialFeed


class ConnectionIndicator(EventHandler):
    """Logs the stream connection state the way a status badge would show it."""

    @subscribe
    def stream_connection_state(self, data: dict):
        if data.get("terminal"):
            _LOGGER.error("Disconnected from server; reconnect manually to resume")
        elif data.get("state") == "disconnected" and data.get("reconnect_attempt"):
            _LOGGER.warning(
                "Reconnecting in %.1fs (attempt %s)",
                data.get("reconnect_delay", 0.0),
                data.get("reconnect_attempt"),
            )

# -----------------------------------------------------------------------------
# Main Application
# -----------------------------------------------------------------------------

async def main() -> None:
    # --- 1. Load Basics ---
    args, config, loop, event_bus = _init_basics()

    # --- 2. Run ---
    async with aiohttp.ClientSession() as session:
        components = _init_components(loop, event_bus, session, config)
        stop_event = _install_signal_handlers(loop)

        try:
            # --- 3. Connect and Enter Role ---
            components.event_stream.connect()
            components.social.refresh_all()

            if args.live:
                if not await components.live.go_live(args.live):
                    _LOGGER.error("Could not go live")
            elif args.follow:
                await components.live.join(args.follow)

            _LOGGER.info("Running; press Ctrl+C to stop")
            await stop_event.wait()
        finally:
            # --- 4. Cleanup ---
            _LOGGER.debug("Shutting down...")
            await components.live.close()
            components.event_stream.disconnect()
            components.social.close()
            components.player.terminate()

# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------

def _init_basics() -> Tuple[argparse.Namespace, Config, asyncio.AbstractEventLoop, EventBus]:
    """Loads config, sets up logging, and creates loop/event bus."""
    parser = argparse.ArgumentParser(prog="listen-along")
    parser.add_argument(
        "-c", "--config", type=Path, required=False,
        default=_MODULE_DIR / "config.json",
        help="Path to configuration.json file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--list-output-devices", action="store_true", help="List audio output devices")
    role = parser.add_mutually_exclusive_group()
    role.add_argument("--live", metavar="GENRE", help="Go live and broadcast playback under GENRE")
    role.add_argument("--follow", metavar="USER_ID", help="Follow a live user's playback (ghost mode)")
    args = parser.parse_args()

    if args.list_output_devices:
        print("Output devices\n" + "=" * 14)
        try:
            player = MpvMediaPlayer(loop=None)
            for speaker in player.player.audio_device_list:
                print(speaker["name"] + ":", speaker["description"])
            player.terminate()
        except Exception as e:
            _LOGGER.error("Failed to list output devices: %s", e)
            sys.exit(1)
        sys.exit(0)

    config_path = args.config
    if not config_path.is_absolute():
        config_path = _REPO_DIR / config_path
    config = load_config_from_json(config_path)

    if args.debug:
        config.app.debug = True

    token_env = os.environ.get("LISTEN_ALONG_TOKEN")
    if token_env:
        config.server.token = token_env

    logging.basicConfig(
        level=logging.DEBUG if config.app.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    _LOGGER.info("Loading configuration from: %s", config_path)

    loop = asyncio.get_running_loop()
    event_bus = EventBus()

    return args, config, loop, event_bus


def _init_components(
    loop: asyncio.AbstractEventLoop,
    event_bus: EventBus,
    session: aiohttp.ClientSession,
    config: Config,
) -> Components:
    """Builds the API client, player, loops and stream client."""
    def token_provider() -> Optional[str]:
        return config.server.token

    api = MusicApiClient(
        session=session,
        base_url=config.server.api_url,
        token_provider=token_provider,
        timeout_s=config.server.timeout_seconds,
    )

    player = MpvMediaPlayer(
        loop=loop,
        device=config.player.output_device,
        initial_volume=config.player.initial_volume,
        http_headers=api.auth_headers(),
    )
    playback = PlaybackController(
        loop=loop,
        event_bus=event_bus,
        player=player,
        api=api,
        initial_volume=config.player.initial_volume,
        restart_threshold_s=config.player.restart_threshold_seconds,
    )

    broadcast = BroadcastLoop(
        loop=loop,
        event_bus=event_bus,
        playback=playback,
        api=api,
        interval_s=config.live.broadcast_interval_seconds,
    )
    sync = SyncLoop(
        loop=loop,
        playback=playback,
        api=api,
        interval_s=config.live.sync_interval_seconds,
        drift_tolerance_s=config.live.drift_tolerance_seconds,
    )
    live = LiveSession(
        event_bus=event_bus,
        playback=playback,
        api=api,
        broadcast=broadcast,
        sync=sync,
    )

    async def opener(token: str):
        return await open_event_stream(
            session,
            api.event_stream_url(token),
            connect_timeout_s=config.server.timeout_seconds,
            read_timeout_s=config.stream.read_timeout_seconds,
        )

    event_stream = EventStreamClient(
        loop=loop,
        event_bus=event_bus,
        config=config.stream,
        credential_provider=token_provider,
        opener=opener,
    )
    ConnectionIndicator(event_bus)
    social = SocialFeed(loop=loop, event_bus=event_bus, api=api)

    return Components(
        api=api,
        player=player,
        playback=playback,
        event_stream=event_stream,
        live=live,
        social=social,
    )


def _install_signal_handlers(loop: asyncio.AbstractEventLoop) -> asyncio.Event:
    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform; Ctrl+C still raises KeyboardInterrupt.
            pass
    return stop_event


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
