"""Unit tests for call configuration.

Tests configuration loading, validation, defaults and environment overrides.
"""

from pathlib import Path

import pytest

from peercall.config import (
    DEFAULT_ROOM_NAME,
    DEFAULT_SIGNALING_URL,
    CallConfig,
    IceServerConfig,
    MediaConfig,
    RoomConfig,
    SignalingConfig,
)

ENV_VARS = ("SIGNALING_SERVER_URL", "DEFAULT_ROOM", "ICE_SERVERS", "LOG_LEVEL")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_call_config_defaults() -> None:
    """Test root configuration defaults."""
    config = CallConfig()

    assert config.signaling.url == DEFAULT_SIGNALING_URL
    assert config.signaling.connect_timeout_s == 10.0
    assert config.room.default_room == DEFAULT_ROOM_NAME == "public-room"
    assert config.room.token_length == 7
    assert config.media.sample_rate == 48000
    assert config.log_level == "INFO"


def test_default_ice_servers() -> None:
    """Test two public STUN servers are configured by default."""
    urls = [server.urls for server in CallConfig().ice.servers]
    assert urls == [["stun:stun.l.google.com:19302"], ["stun:stun1.l.google.com:19302"]]


def test_signaling_url_validation() -> None:
    """Test the relay URL must be a WebSocket URL."""
    assert SignalingConfig(url="ws://localhost:8080").url == "ws://localhost:8080"

    with pytest.raises(ValueError):
        SignalingConfig(url="https://example.com")


def test_ice_server_validation() -> None:
    """Test ICE server URLs must be stun/turn URLs."""
    server = IceServerConfig(urls=["turn:turn.example.com:3478"], username="u", credential="p")
    assert server.username == "u"

    with pytest.raises(ValueError):
        IceServerConfig(urls=["http://stun.example.com"])

    with pytest.raises(ValueError):
        IceServerConfig(urls=[])


def test_room_config_validation() -> None:
    """Test room token length bounds."""
    assert RoomConfig(token_length=12).token_length == 12

    with pytest.raises(ValueError):
        RoomConfig(token_length=2)

    with pytest.raises(ValueError):
        RoomConfig(default_room="")


def test_media_sample_rate_validation() -> None:
    """Test capture sample rate must be an Opus rate."""
    assert MediaConfig(sample_rate=16000).sample_rate == 16000

    with pytest.raises(ValueError):
        MediaConfig(sample_rate=44100)


def test_log_level_normalized() -> None:
    """Test log level is validated and upper-cased."""
    assert CallConfig(log_level="debug").log_level == "DEBUG"

    with pytest.raises(ValueError):
        CallConfig(log_level="chatty")


def test_call_config_from_yaml(tmp_path: Path) -> None:
    """Test loading configuration from YAML file."""
    config_file = tmp_path / "peercall.yaml"
    config_file.write_text(
        """signaling:
  url: "ws://relay.local:9000"
  connect_timeout_s: 3

ice:
  servers:
    - urls: ["stun:stun.example.com:3478"]

room:
  default_room: "lobby"

media:
  device: "hw:1"
  format: "alsa"

log_level: "DEBUG"
"""
    )

    config = CallConfig.from_yaml(config_file)

    assert config.signaling.url == "ws://relay.local:9000"
    assert config.signaling.connect_timeout_s == 3.0
    assert config.ice.servers[0].urls == ["stun:stun.example.com:3478"]
    assert config.room.default_room == "lobby"
    assert config.media.device == "hw:1"
    assert config.media.format == "alsa"
    assert config.log_level == "DEBUG"


def test_call_config_from_yaml_with_env_overrides(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test environment variables override YAML values."""
    monkeypatch.setenv("SIGNALING_SERVER_URL", "wss://relay.example.com/")
    monkeypatch.setenv("DEFAULT_ROOM", "team-room")
    monkeypatch.setenv("ICE_SERVERS", "stun:a.example.com:3478, turn:b.example.com:3478")
    monkeypatch.setenv("LOG_LEVEL", "warning")

    config_file = tmp_path / "peercall.yaml"
    config_file.write_text(
        """signaling:
  url: "ws://relay.local:9000"
room:
  default_room: "lobby"
"""
    )

    config = CallConfig.from_yaml(config_file)

    assert config.signaling.url == "wss://relay.example.com/"
    assert config.room.default_room == "team-room"
    assert [s.urls for s in config.ice.servers] == [
        ["stun:a.example.com:3478"],
        ["turn:b.example.com:3478"],
    ]
    assert config.log_level == "WARNING"


def test_call_config_from_yaml_missing_file() -> None:
    """Test loading configuration from non-existent file raises error."""
    with pytest.raises(FileNotFoundError):
        CallConfig.from_yaml(Path("/nonexistent/peercall.yaml"))


def test_call_config_from_yaml_empty_file(tmp_path: Path) -> None:
    """Test an empty YAML file yields defaults."""
    config_file = tmp_path / "empty.yaml"
    config_file.write_text("")

    assert CallConfig.from_yaml(config_file) == CallConfig()


def test_call_config_from_yaml_with_defaults_missing() -> None:
    """Test loading config with defaults when file doesn't exist."""
    config = CallConfig.from_yaml_with_defaults(Path("/nonexistent/peercall.yaml"))

    assert config.signaling.url == DEFAULT_SIGNALING_URL
    assert config.log_level == "INFO"


def test_call_config_from_yaml_with_defaults_env_only(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test environment overrides apply without a config file."""
    monkeypatch.setenv("DEFAULT_ROOM", "team-room")

    config = CallConfig.from_yaml_with_defaults(None)

    assert config.room.default_room == "team-room"
