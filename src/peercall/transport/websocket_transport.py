"""WebSocket signaling transport implementation.

Connects to a room-based signaling relay over WebSocket, exchanging
JSON-encoded envelope frames defined in ``peercall.transport.protocol``.
"""

import json
import logging
from collections.abc import AsyncIterator

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from peercall.errors import ProtocolViolation, TransportUnavailable
from peercall.transport.base import SignalingTransport
from peercall.transport.protocol import (
    ConnectedEvent,
    JoinCallMessage,
    OutboundSignalMessage,
    SignalingMessage,
    TransportEvent,
    parse_event,
)

logger = logging.getLogger(__name__)


class WebSocketSignalingTransport(SignalingTransport):
    """Relay client over a single WebSocket connection."""

    def __init__(
        self,
        connect_timeout_s: float = 10.0,
        max_message_size: int = 2**20,
    ) -> None:
        """Initialize WebSocket signaling transport.

        Args:
            connect_timeout_s: Timeout for the opening handshake
            max_message_size: Maximum inbound frame size in bytes
        """
        self._connect_timeout_s = connect_timeout_s
        self._max_message_size = max_message_size
        self._websocket: ClientConnection | None = None
        self._participant_id: str | None = None
        self._closed = False

    @property
    def participant_id(self) -> str | None:
        """Relay-assigned session id."""
        return self._participant_id

    @property
    def is_connected(self) -> bool:
        """Check if the relay connection is still active."""
        return (
            not self._closed
            and self._websocket is not None
            and self._websocket.state == State.OPEN
        )

    async def connect(self, endpoint: str) -> None:
        """Open the relay connection.

        Raises:
            TransportUnavailable: If the relay cannot be reached
            RuntimeError: If already connected
        """
        if self._websocket is not None:
            raise RuntimeError("Signaling transport is already connected")

        logger.info("Connecting to signaling relay", extra={"endpoint": endpoint})

        try:
            self._websocket = await connect(
                endpoint,
                open_timeout=self._connect_timeout_s,
                max_size=self._max_message_size,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            logger.error(
                "Failed to connect to signaling relay",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise TransportUnavailable(f"Signaling relay unreachable: {e}") from e

        if self._closed:
            websocket, self._websocket = self._websocket, None
            await websocket.close()
            raise TransportUnavailable("Signaling transport closed while connecting")

        logger.info("Connected to signaling relay", extra={"endpoint": endpoint})

    async def join_room(self, token: str) -> None:
        """Ask the relay to add this participant to a room."""
        await self._send_frame(JoinCallMessage(room=token).model_dump_json())
        logger.info("Join requested", extra={"room": token})

    async def send(self, target: str, message: SignalingMessage) -> None:
        """Send a signaling payload addressed to one participant."""
        envelope = OutboundSignalMessage(target=target, signal=message)
        await self._send_frame(envelope.model_dump_json())

        logger.debug(
            "Signal sent",
            extra={"target": target, "signal_type": message.type},
        )

    async def events(self) -> AsyncIterator[TransportEvent]:
        """Receive inbound relay events in delivery order."""
        if self._websocket is None:
            raise TransportUnavailable("Signaling transport is not connected")

        try:
            async for raw_message in self._websocket:
                try:
                    if isinstance(raw_message, bytes):
                        raw_message = raw_message.decode("utf-8")
                    event = parse_event(json.loads(raw_message))
                except UnicodeDecodeError as e:
                    logger.warning("Non UTF-8 relay frame, dropped", extra={"error": str(e)})
                    continue
                except json.JSONDecodeError as e:
                    logger.warning("Invalid JSON relay frame, dropped", extra={"error": str(e)})
                    continue
                except ProtocolViolation as e:
                    logger.warning("Malformed relay frame, dropped", extra={"error": str(e)})
                    continue

                if isinstance(event, ConnectedEvent):
                    self._participant_id = event.participant_id
                    logger.info(
                        "Relay session assigned",
                        extra={"participant_id": event.participant_id},
                    )

                yield event

        except ConnectionClosed as e:
            if self._closed:
                return
            logger.warning("Signaling relay connection closed", extra={"error": str(e)})
            raise TransportUnavailable(f"Signaling relay connection closed: {e}") from e

        if not self._closed:
            raise TransportUnavailable("Signaling relay connection closed")

    async def close(self) -> None:
        """Disconnect from the relay (no-op if already closed)."""
        if self._closed:
            return
        self._closed = True

        websocket, self._websocket = self._websocket, None
        self._participant_id = None
        if websocket is None:
            return

        logger.info("Closing signaling relay connection")

        try:
            await websocket.close()
        except (OSError, WebSocketException) as e:
            logger.warning("Error during relay close", extra={"error": str(e)})

    async def _send_frame(self, frame: str) -> None:
        if not self.is_connected:
            raise TransportUnavailable("Signaling relay connection is closed")

        assert self._websocket is not None
        try:
            await self._websocket.send(frame)
        except ConnectionClosed as e:
            raise TransportUnavailable(f"Signaling relay connection closed: {e}") from e
