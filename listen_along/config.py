"""Configuration models for the application."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import logging
_LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Configuration Dataclasses
# -----------------------------------------------------------------------------

@dataclass
class AppConfig:
    """General application settings."""
    name: str = "listen-along"
    debug: bool = False


@dataclass
class ServerConfig:
    """Settings for the music service REST API and its event stream."""
    api_url: str = "http://localhost:5000/api"
    token: Optional[str] = None
    timeout_seconds: float = 10.0


@dataclass
class StreamConfig:
    """Reconnect policy for the server-push event stream."""
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    max_attempts: int = 10
    # A stream silent for this long is treated as dropped. The server sends
    # heartbeats well inside it. null disables the check.
    read_timeout_seconds: Optional[float] = 90.0


@dataclass
class LiveConfig:
    """Timing for broadcasting and following a live session."""
    broadcast_interval_seconds: float = 3.0
    sync_interval_seconds: float = 3.0
    # Drift below this is left alone to avoid audible micro-seeks.
    drift_tolerance_seconds: float = 2.0


@dataclass
class PlayerConfig:
    """Settings for local playback."""
    output_device: Optional[str] = None
    initial_volume: float = 0.75
    # previous() restarts the current song once it has played this long.
    restart_threshold_seconds: float = 3.0


@dataclass
class Config:
    """Main configuration object."""
    app: AppConfig = field(default_factory=AppConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)

# -----------------------------------------------------------------------------
# Helper Function
# -----------------------------------------------------------------------------

def load_config_from_json(config_path: Path) -> Config:
    """Loads configuration from a JSON file and populates dataclasses."""

    # --- Step 1: Load raw JSON data ---
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_data = json.load(f)
    except FileNotFoundError:
        _LOGGER.critical("Configuration file not found at: %s", config_path)
        raise
    except json.JSONDecodeError as e:
        _LOGGER.critical("Error parsing configuration file: %s", e)
        raise

    if not isinstance(raw_data, dict):
        raise ValueError("Configuration file must contain a JSON object.")

    # --- Step 2: Create config objects from raw data ---
    app_config = AppConfig(**raw_data.get("app", {}))
    server_config = ServerConfig(**raw_data.get("server", {}))
    stream_config = StreamConfig(**raw_data.get("stream", {}))
    live_config = LiveConfig(**raw_data.get("live", {}))
    player_config = PlayerConfig(**raw_data.get("player", {}))

    # --- Step 3: Normalize ---
    server_config.api_url = server_config.api_url.rstrip("/")
    if stream_config.max_attempts < 0:
        raise ValueError("stream.max_attempts must not be negative.")
    if stream_config.read_timeout_seconds is not None and stream_config.read_timeout_seconds <= 0:
        raise ValueError("stream.read_timeout_seconds must be positive.")
    player_config.initial_volume = max(0.0, min(1.0, float(player_config.initial_volume)))

    # --- Step 4: Return the main Config object ---
    return Config(
        app=app_config,
        server=server_config,
        stream=stream_config,
        live=live_config,
        player=player_config,
    )
