"""Active call aggregate.

Every resource of a call attempt (relay connection, room record, negotiation
session, local and remote media, background tasks) hangs off one
``ActiveCall``. Only one exists at a time and it is disposed exactly once
by ``SessionCleanup``.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any

from peercall.errors import TransportUnavailable
from peercall.media import LocalMediaHandle, RemoteMediaHandle
from peercall.metrics import CallMetrics
from peercall.negotiation.session import NegotiationSession
from peercall.room import RoomCoordinator
from peercall.transport.base import SignalingTransport
from peercall.transport.protocol import IceCandidateMessage, TransportEvent

# ----------------------------------------------------------------------------
# Events fed to the per-call queue besides relay events
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class TransportLost:
    """Relay connection broke while the call was running."""

    error: TransportUnavailable


@dataclass(frozen=True)
class RemoteTrackArrived:
    """Negotiation primitive produced an inbound media track."""

    track: Any


@dataclass(frozen=True)
class LocalCandidateFound:
    """Negotiation primitive discovered a local candidate."""

    candidate: IceCandidateMessage


@dataclass(frozen=True)
class ConnectionStateChanged:
    """Negotiation primitive reported a media path state."""

    state: str


CallEvent = TransportEvent | TransportLost | RemoteTrackArrived | LocalCandidateFound | ConnectionStateChanged


@dataclass
class ActiveCall:
    """Resources owned by one call attempt."""

    call_id: str = field(default_factory=lambda: f"call-{uuid.uuid4().hex[:12]}")
    transport: SignalingTransport | None = None
    room: RoomCoordinator | None = None
    negotiation: NegotiationSession | None = None
    local_media: LocalMediaHandle | None = None
    remote_media: RemoteMediaHandle | None = None
    metrics: CallMetrics = field(default_factory=CallMetrics)
    events: asyncio.Queue[CallEvent] = field(default_factory=asyncio.Queue)
    tasks: set[asyncio.Task[None]] = field(default_factory=set)
    disposed: bool = False

    def post(self, event: CallEvent) -> None:
        """Queue an event for the call's consumer (dropped once disposed)."""
        if not self.disposed:
            self.events.put_nowait(event)

    @property
    def owns_resources(self) -> bool:
        """True while any resource is still attached."""
        return any(
            resource is not None
            for resource in (
                self.transport,
                self.negotiation,
                self.local_media,
                self.remote_media,
            )
        ) or bool(self.tasks)
