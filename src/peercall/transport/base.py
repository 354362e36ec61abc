"""Base signaling transport abstraction.

Defines the interface a relay client must implement so the call core can
join rooms, address signaling payloads to a peer and receive room events,
independently of the relay's wire technology.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from peercall.transport.protocol import SignalingMessage, TransportEvent


class SignalingTransport(ABC):
    """Bidirectional message channel to a signaling relay.

    One instance serves exactly one call attempt: it is connected once,
    joins one room and is closed by session cleanup.
    """

    @abstractmethod
    async def connect(self, endpoint: str) -> None:
        """Open the relay connection.

        Args:
            endpoint: Relay URL

        Raises:
            TransportUnavailable: If the relay cannot be reached
        """
        pass

    @abstractmethod
    async def join_room(self, token: str) -> None:
        """Ask the relay to add this participant to a room.

        The relay then emits ``user-joined`` to existing room members and,
        for each existing member, to this participant.

        Raises:
            TransportUnavailable: If the connection is closed or broken
        """
        pass

    @abstractmethod
    async def send(self, target: str, message: SignalingMessage) -> None:
        """Send a signaling payload addressed to one participant.

        Raises:
            TransportUnavailable: If the connection is closed or broken
        """
        pass

    @abstractmethod
    async def events(self) -> AsyncIterator[TransportEvent]:
        """Receive inbound relay events in delivery order.

        Iteration ends when the connection is closed locally. A remote close
        or broken connection raises ``TransportUnavailable``.

        Yields:
            TransportEvent: ``connected``, ``user-joined``, ``user-left`` or ``signal``
        """
        # Using yield to make this an async generator
        if False:
            yield  # type: ignore[misc]

    @abstractmethod
    async def close(self) -> None:
        """Disconnect from the relay.

        Must be safe to call on an already-closed transport.
        """
        pass

    @property
    @abstractmethod
    def participant_id(self) -> str | None:
        """Relay-assigned session id, or None before ``connected``."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the relay connection is still active."""
        pass
