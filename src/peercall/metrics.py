"""Per-call timing and signaling counters."""

import time
from dataclasses import dataclass, field


@dataclass
class CallMetrics:
    """Call setup metrics."""

    # Timing metrics (monotonic seconds)
    call_start_ts: float = field(default_factory=time.monotonic)
    media_acquired_ts: float | None = None
    room_ready_ts: float | None = None
    connected_ts: float | None = None
    call_end_ts: float | None = None

    # Signaling counters
    offers_sent: int = 0
    answers_sent: int = 0
    local_candidates_sent: int = 0
    local_candidates_dropped: int = 0
    remote_candidates_received: int = 0
    remote_candidates_failed: int = 0
    signals_dropped: int = 0

    def record_media_acquired(self) -> None:
        """Record that local media was granted."""
        self.media_acquired_ts = time.monotonic()

    def record_room_ready(self) -> None:
        """Record that the relay room was joined."""
        self.room_ready_ts = time.monotonic()

    def record_connected(self) -> None:
        """Record the first remote media arrival."""
        if self.connected_ts is None:
            self.connected_ts = time.monotonic()

    def time_to_connect_ms(self) -> float | None:
        """Time from call start to first remote media.

        Returns:
            float: Latency in milliseconds, or None if never connected
        """
        if self.connected_ts is None:
            return None
        return (self.connected_ts - self.call_start_ts) * 1000.0

    def finalize(self) -> None:
        """Mark call as ended and record end time."""
        if self.call_end_ts is None:
            self.call_end_ts = time.monotonic()
