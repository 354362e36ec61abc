"""Negotiation primitive abstraction.

The call core drives a peer connection only through this interface, so the
offer/answer/ICE logic in ``NegotiationSession`` is independent of the
WebRTC stack underneath.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from peercall.transport.protocol import IceCandidateMessage

# Connection states treated as terminal for a call
TERMINAL_CONNECTION_STATES: frozenset[str] = frozenset({"failed", "disconnected", "closed"})


@dataclass(frozen=True)
class SessionDescription:
    """An SDP description produced or consumed by the primitive."""

    type: str  # "offer" | "answer"
    sdp: str


@dataclass
class PeerConnectionHandlers:
    """Callbacks a primitive invokes as negotiation progresses."""

    on_track: Callable[[Any], None]
    on_ice_candidate: Callable[[IceCandidateMessage], None]
    on_connection_state_change: Callable[[str], None]


class PeerConnection(ABC):
    """One peer-to-peer media connection."""

    @abstractmethod
    def set_handlers(self, handlers: PeerConnectionHandlers) -> None:
        """Register negotiation callbacks. Called once, before any other method."""
        pass

    @abstractmethod
    def add_track(self, track: Any) -> None:
        """Attach an outgoing media track."""
        pass

    @abstractmethod
    async def create_offer(self) -> SessionDescription:
        pass

    @abstractmethod
    async def create_answer(self) -> SessionDescription:
        pass

    @abstractmethod
    async def set_local_description(self, description: SessionDescription) -> None:
        pass

    @abstractmethod
    async def set_remote_description(self, description: SessionDescription) -> None:
        """Apply the peer's description.

        Raises:
            ValueError: If the description is malformed or not valid in the
                current signaling state
        """
        pass

    @abstractmethod
    async def add_ice_candidate(self, candidate: IceCandidateMessage) -> None:
        """Apply a remote candidate.

        Raises:
            ValueError: If the candidate cannot be parsed or applied
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Must be safe to call more than once."""
        pass

    @property
    @abstractmethod
    def local_description(self) -> SessionDescription | None:
        """Current local description, including any gathered candidates."""
        pass

    @property
    @abstractmethod
    def connection_state(self) -> str:
        """Current connection state (``new``, ``connecting``, ``connected``, ...)."""
        pass


PeerConnectionFactory = Callable[[], PeerConnection]
