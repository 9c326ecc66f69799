"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from listen_along.config import load_config_from_json

_REPO_DIR = Path(__file__).parent.parent
_DEFAULT_CONFIG = _REPO_DIR / "listen_along" / "config.json"


def write_config(tmp_path: Path, data) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_default_config_loads() -> None:
    config = load_config_from_json(_DEFAULT_CONFIG)

    assert config.server.api_url == "http://localhost:5000/api"
    assert config.stream.base_delay_seconds == 1.0
    assert config.stream.max_delay_seconds == 30.0
    assert config.stream.max_attempts == 10
    assert config.stream.read_timeout_seconds == 90.0
    assert config.live.drift_tolerance_seconds == 2.0
    assert config.player.restart_threshold_seconds == 3.0


def test_missing_sections_use_defaults(tmp_path) -> None:
    config = load_config_from_json(write_config(tmp_path, {"server": {"token": "abc"}}))

    assert config.server.token == "abc"
    assert config.live.sync_interval_seconds == 3.0
    assert config.app.debug is False


def test_values_are_normalized(tmp_path) -> None:
    config = load_config_from_json(write_config(tmp_path, {
        "server": {"api_url": "https://music.example/api/"},
        "player": {"initial_volume": 1.7},
    }))

    assert config.server.api_url == "https://music.example/api"
    assert config.player.initial_volume == 1.0


def test_negative_attempts_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        load_config_from_json(write_config(tmp_path, {"stream": {"max_attempts": -1}}))


def test_non_positive_read_timeout_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        load_config_from_json(write_config(tmp_path, {"stream": {"read_timeout_seconds": 0}}))


def test_unknown_key_rejected(tmp_path) -> None:
    with pytest.raises(TypeError):
        load_config_from_json(write_config(tmp_path, {"live": {"bogus": 1}}))


def test_non_object_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        load_config_from_json(write_config(tmp_path, [1, 2]))


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config_from_json(tmp_path / "nope.json")
