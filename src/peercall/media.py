"""Local and remote audio media handles.

Local audio is captured through aiortc's FFmpeg-backed ``MediaPlayer``;
remote audio is fed to an optional sink (``MediaRecorder`` or
``MediaBlackhole``). Both handles release idempotently so session cleanup
can run any number of times.
"""

import asyncio
import logging
import platform
from abc import ABC, abstractmethod
from typing import Any

import av
from aiortc import MediaStreamTrack

from peercall.config import MediaConfig
from peercall.errors import DeviceUnavailable, MediaPermissionDenied

logger = logging.getLogger(__name__)


class LocalMediaHandle:
    """Outgoing audio owned by one call attempt."""

    def __init__(self, tracks: list[MediaStreamTrack], source: Any = None) -> None:
        """Initialize local media handle.

        Args:
            tracks: Captured audio tracks
            source: Object that produced the tracks (kept alive until release)
        """
        self._tracks = list(tracks)
        self._source = source
        self._released = False

    @property
    def tracks(self) -> list[MediaStreamTrack]:
        """Audio tracks to attach to the peer connection."""
        return list(self._tracks)

    @property
    def is_released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Stop all tracks. Safe to call more than once."""
        if self._released:
            return
        self._released = True

        for track in self._tracks:
            try:
                track.stop()
            except Exception as e:
                logger.warning("Error stopping local track", extra={"error": str(e)})

        self._tracks.clear()
        self._source = None
        logger.debug("Local media released")


class RemoteMediaHandle:
    """Incoming audio received from the peer."""

    def __init__(self, track: MediaStreamTrack, sink: Any = None) -> None:
        """Initialize remote media handle.

        Args:
            track: Remote audio track
            sink: Optional consumer with aiortc's ``addTrack/start/stop`` interface
        """
        self._track = track
        self._sink = sink
        self._started = False
        self._released = False

    @property
    def track(self) -> MediaStreamTrack:
        return self._track

    @property
    def is_released(self) -> bool:
        return self._released

    async def start(self) -> None:
        """Start feeding the remote track into the sink, if any."""
        if self._sink is None or self._started or self._released:
            return
        self._sink.addTrack(self._track)
        await self._sink.start()
        self._started = True

    async def release(self) -> None:
        """Stop the sink and drop the track. Safe to call more than once."""
        if self._released:
            return
        self._released = True

        if self._sink is not None and self._started:
            try:
                await self._sink.stop()
            except Exception as e:
                logger.warning("Error stopping remote media sink", extra={"error": str(e)})

        self._sink = None
        logger.debug("Remote media released")


class MediaSource(ABC):
    """Acquires local audio input for a call."""

    @abstractmethod
    async def request_audio_input(self) -> LocalMediaHandle:
        """Acquire the local microphone.

        Raises:
            MediaPermissionDenied: If access to the device is refused
            DeviceUnavailable: If no usable device exists
        """
        pass


def default_capture_device() -> tuple[str, str]:
    """Return the platform's default FFmpeg ``(device, format)`` for audio capture."""
    system = platform.system()
    if system == "Darwin":
        return ":default", "avfoundation"
    if system == "Windows":
        return "audio=default", "dshow"
    return "default", "pulse"


class MicrophoneSource(MediaSource):
    """System microphone captured via aiortc's ``MediaPlayer``."""

    def __init__(self, config: MediaConfig | None = None) -> None:
        self._config = config or MediaConfig()

    async def request_audio_input(self) -> LocalMediaHandle:
        """Open the configured capture device in a worker thread."""
        from aiortc.contrib.media import MediaPlayer

        default_device, default_format = default_capture_device()
        device = self._config.device or default_device
        fmt = self._config.format or default_format
        options = {"sample_rate": str(self._config.sample_rate), "channels": "1"}

        logger.info("Requesting audio input", extra={"device": device, "format": fmt})

        try:
            player = await asyncio.to_thread(MediaPlayer, device, format=fmt, options=options)
        except PermissionError as e:
            raise MediaPermissionDenied(f"Microphone access denied: {e}") from e
        except (OSError, av.error.FFmpegError) as e:
            raise DeviceUnavailable(f"Microphone unavailable: {e}") from e

        if player.audio is None:
            raise DeviceUnavailable(f"Capture device '{device}' has no audio stream")

        logger.info("Audio input acquired", extra={"device": device})
        return LocalMediaHandle([player.audio], source=player)
