"""Configuration schema for peercall.

Defines Pydantic models for loading and validating call configuration
from YAML files and environment variables.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DEFAULT_SIGNALING_URL = "wss://gemini-voice-chat-signal.glitch.me/"
DEFAULT_ROOM_NAME = "public-room"


class SignalingConfig(BaseModel):
    """Signaling relay connection configuration."""

    url: str = Field(
        default=DEFAULT_SIGNALING_URL,
        description="WebSocket URL of the signaling relay",
    )
    connect_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for establishing the relay connection",
    )
    max_message_size: int = Field(
        default=2**20,
        ge=1024,
        description="Maximum signaling message size in bytes",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that the relay URL uses a WebSocket scheme."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"Signaling url must start with ws:// or wss://, got '{v}'")
        return v


class IceServerConfig(BaseModel):
    """A single STUN/TURN server entry."""

    urls: list[str] = Field(..., min_length=1, description="Server URLs")
    username: str | None = Field(default=None, description="TURN username")
    credential: str | None = Field(default=None, description="TURN credential")

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        """Validate ICE server URL schemes."""
        valid_schemes = ("stun:", "stuns:", "turn:", "turns:")
        for url in v:
            if not url.startswith(valid_schemes):
                raise ValueError(f"ICE server url must be stun/turn, got '{url}'")
        return v


def _default_ice_servers() -> list[IceServerConfig]:
    return [
        IceServerConfig(urls=["stun:stun.l.google.com:19302"]),
        IceServerConfig(urls=["stun:stun1.l.google.com:19302"]),
    ]


class IceConfig(BaseModel):
    """Connectivity establishment configuration."""

    servers: list[IceServerConfig] = Field(
        default_factory=_default_ice_servers,
        description="Public STUN/TURN servers used for candidate gathering",
    )


class RoomConfig(BaseModel):
    """Room naming configuration."""

    default_room: str = Field(
        default=DEFAULT_ROOM_NAME,
        min_length=1,
        description="Room joined when no room token is given",
    )
    token_length: int = Field(
        default=7,
        ge=4,
        le=32,
        description="Length of generated room tokens",
    )


class MediaConfig(BaseModel):
    """Local audio input configuration.

    ``device`` and ``format`` are passed to FFmpeg via aiortc's MediaPlayer.
    When unset, a platform default is chosen (pulse on Linux, avfoundation
    on macOS, dshow on Windows).
    """

    device: str | None = Field(default=None, description="Audio input device name")
    format: str | None = Field(default=None, description="FFmpeg input format")
    sample_rate: int = Field(default=48000, description="Capture sample rate in Hz")

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: int) -> int:
        """Validate that sample rate is one Opus accepts."""
        valid_rates = [8000, 12000, 16000, 24000, 48000]
        if v not in valid_rates:
            raise ValueError(f"Media sample_rate must be one of {valid_rates}, got {v}")
        return v


class CallConfig(BaseModel):
    """Root call configuration."""

    signaling: SignalingConfig = Field(default_factory=SignalingConfig)
    ice: IceConfig = Field(default_factory=IceConfig)
    room: RoomConfig = Field(default_factory=RoomConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @classmethod
    def from_yaml(cls, path: Path) -> "CallConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.model_validate(_apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "CallConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(_apply_env_overrides({}))


def _apply_env_overrides(data: dict) -> dict:
    import os

    if signaling_url := os.getenv("SIGNALING_SERVER_URL"):
        data.setdefault("signaling", {})["url"] = signaling_url

    if default_room := os.getenv("DEFAULT_ROOM"):
        data.setdefault("room", {})["default_room"] = default_room

    if ice_servers := os.getenv("ICE_SERVERS"):
        urls = [url.strip() for url in ice_servers.split(",") if url.strip()]
        data.setdefault("ice", {})["servers"] = [{"urls": [url]} for url in urls]

    if log_level := os.getenv("LOG_LEVEL"):
        data["log_level"] = log_level

    return data
