"""Unit tests for the WebSocket signaling transport.

Tests relay connection, frame encoding, inbound event parsing and
connection loss handling against a scripted socket.
"""

import json
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from peercall.errors import TransportUnavailable
from peercall.transport.protocol import (
    AnswerMessage,
    ConnectedEvent,
    IceCandidateMessage,
    SignalEvent,
    UserJoinedEvent,
)
from peercall.transport.websocket_transport import WebSocketSignalingTransport

CONNECT = "peercall.transport.websocket_transport.connect"


class ScriptedWebSocket:
    """Client connection double replaying a list of inbound frames."""

    def __init__(self, frames: list[str | bytes] | None = None, error: Exception | None = None) -> None:
        self.frames = frames or []
        self.error = error
        self.state = State.OPEN
        self.sent: list[str] = []
        self.close_count = 0
        self.close_error: Exception | None = None

    async def send(self, frame: str) -> None:
        if self.state is not State.OPEN:
            raise ConnectionClosed(None, None)
        self.sent.append(frame)

    async def close(self) -> None:
        self.close_count += 1
        self.state = State.CLOSED
        if self.close_error is not None:
            raise self.close_error

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str | bytes]:
        for frame in self.frames:
            if self.state is not State.OPEN:
                return
            yield frame
        if self.error is not None:
            self.state = State.CLOSED
            raise self.error


async def connected_transport(ws: ScriptedWebSocket) -> WebSocketSignalingTransport:
    transport = WebSocketSignalingTransport(connect_timeout_s=2.0, max_message_size=4096)
    with patch(CONNECT, new=AsyncMock(return_value=ws)):
        await transport.connect("ws://relay.test")
    return transport


async def drain(transport: WebSocketSignalingTransport) -> list:
    return [event async for event in transport.events()]


class TestConnect:
    """Test relay connection setup."""

    @pytest.mark.asyncio
    async def test_connect_passes_limits(self) -> None:
        """Test the handshake timeout and frame size limit are applied."""
        ws = ScriptedWebSocket()
        transport = WebSocketSignalingTransport(connect_timeout_s=2.0, max_message_size=4096)

        with patch(CONNECT, new=AsyncMock(return_value=ws)) as mock_connect:
            await transport.connect("ws://relay.test")

        mock_connect.assert_awaited_once_with("ws://relay.test", open_timeout=2.0, max_size=4096)
        assert transport.is_connected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [OSError("refused"), TimeoutError()])
    async def test_connect_failure_is_transport_unavailable(self, error: Exception) -> None:
        """Test unreachable relays raise TransportUnavailable."""
        transport = WebSocketSignalingTransport()

        with patch(CONNECT, new=AsyncMock(side_effect=error)):
            with pytest.raises(TransportUnavailable):
                await transport.connect("ws://relay.test")

        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_connect_twice_fails(self) -> None:
        """Test a transport connects at most once."""
        transport = await connected_transport(ScriptedWebSocket())

        with pytest.raises(RuntimeError):
            await transport.connect("ws://relay.test")

    @pytest.mark.asyncio
    async def test_close_during_connect_releases_socket(self) -> None:
        """Test a socket opened after close() is closed immediately."""
        ws = ScriptedWebSocket()
        transport = WebSocketSignalingTransport()

        async def slow_connect(*args: object, **kwargs: object) -> ScriptedWebSocket:
            await transport.close()
            return ws

        with patch(CONNECT, new=slow_connect):
            with pytest.raises(TransportUnavailable):
                await transport.connect("ws://relay.test")

        assert ws.close_count == 1
        assert not transport.is_connected


class TestOutbound:
    """Test client → relay frames."""

    @pytest.mark.asyncio
    async def test_join_room_frame(self) -> None:
        """Test joining sends a join-call frame."""
        ws = ScriptedWebSocket()
        transport = await connected_transport(ws)

        await transport.join_room("ab12cd3")

        assert [json.loads(f) for f in ws.sent] == [{"type": "join-call", "room": "ab12cd3"}]

    @pytest.mark.asyncio
    async def test_send_wraps_signal(self) -> None:
        """Test signals are wrapped in an addressed envelope."""
        ws = ScriptedWebSocket()
        transport = await connected_transport(ws)

        await transport.send("peer-1", IceCandidateMessage(candidate="candidate:1", sdp_mid="0", sdp_mline_index=0))

        frame = json.loads(ws.sent[0])
        assert frame["type"] == "signal"
        assert frame["target"] == "peer-1"
        assert frame["signal"] == {
            "type": "ice-candidate",
            "candidate": "candidate:1",
            "sdp_mid": "0",
            "sdp_mline_index": 0,
        }

    @pytest.mark.asyncio
    async def test_send_before_connect_fails(self) -> None:
        """Test sending without a connection raises TransportUnavailable."""
        transport = WebSocketSignalingTransport()

        with pytest.raises(TransportUnavailable):
            await transport.send("peer-1", AnswerMessage(sdp="v=0"))

    @pytest.mark.asyncio
    async def test_send_after_remote_close_fails(self) -> None:
        """Test sending on a dropped connection raises TransportUnavailable."""
        ws = ScriptedWebSocket()
        transport = await connected_transport(ws)
        ws.state = State.CLOSED

        assert not transport.is_connected
        with pytest.raises(TransportUnavailable):
            await transport.join_room("ab12cd3")


class TestInbound:
    """Test relay → client events."""

    @pytest.mark.asyncio
    async def test_events_in_order_and_malformed_dropped(self) -> None:
        """Test valid frames are yielded in order and bad frames are skipped."""
        ws = ScriptedWebSocket(
            frames=[
                json.dumps({"type": "connected", "participant_id": "peer-0"}),
                "{not json",
                json.dumps({"type": "broadcast"}),
                json.dumps({"type": "user-joined", "participant_id": "peer-1"}).encode("utf-8"),
                json.dumps(
                    {"type": "signal", "sender": "peer-1", "signal": {"type": "answer", "sdp": "v=0"}}
                ),
            ],
        )
        transport = await connected_transport(ws)
        events: list = []

        with pytest.raises(TransportUnavailable):
            async for event in transport.events():
                events.append(event)

        assert events == [
            ConnectedEvent(participant_id="peer-0"),
            UserJoinedEvent(participant_id="peer-1"),
            SignalEvent(sender="peer-1", signal=AnswerMessage(sdp="v=0")),
        ]
        assert transport.participant_id == "peer-0"

    @pytest.mark.asyncio
    async def test_non_utf8_binary_frame_dropped(self) -> None:
        """Test an undecodable binary frame is skipped and later frames still arrive."""
        ws = ScriptedWebSocket(
            frames=[
                b"\xff\xfe\xfd",
                json.dumps({"type": "user-joined", "participant_id": "peer-1"}),
            ],
        )
        transport = await connected_transport(ws)
        events: list = []

        with pytest.raises(TransportUnavailable):
            async for event in transport.events():
                events.append(event)

        assert events == [UserJoinedEvent(participant_id="peer-1")]

    @pytest.mark.asyncio
    async def test_connection_closed_raises_transport_unavailable(self) -> None:
        """Test a dropped relay connection surfaces as TransportUnavailable."""
        ws = ScriptedWebSocket(error=ConnectionClosed(None, None))
        transport = await connected_transport(ws)

        with pytest.raises(TransportUnavailable):
            await drain(transport)

    @pytest.mark.asyncio
    async def test_local_close_ends_events_quietly(self) -> None:
        """Test closing locally ends the event stream without an error."""
        ws = ScriptedWebSocket(
            frames=[
                json.dumps({"type": "connected", "participant_id": "peer-0"}),
                json.dumps({"type": "user-joined", "participant_id": "peer-1"}),
            ]
        )
        transport = await connected_transport(ws)
        events = transport.events()

        assert await events.__anext__() == ConnectedEvent(participant_id="peer-0")
        await transport.close()

        with pytest.raises(StopAsyncIteration):
            await events.__anext__()

    @pytest.mark.asyncio
    async def test_events_before_connect_fails(self) -> None:
        """Test reading events without a connection raises TransportUnavailable."""
        transport = WebSocketSignalingTransport()

        with pytest.raises(TransportUnavailable):
            await drain(transport)


class TestClose:
    """Test disconnection."""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        """Test the socket is closed once."""
        ws = ScriptedWebSocket()
        transport = await connected_transport(ws)

        await transport.close()
        await transport.close()

        assert ws.close_count == 1
        assert not transport.is_connected
        assert transport.participant_id is None

    @pytest.mark.asyncio
    async def test_close_error_is_logged(self) -> None:
        """Test a failing socket close does not raise."""
        ws = ScriptedWebSocket()
        ws.close_error = OSError("broken pipe")
        transport = await connected_transport(ws)

        await transport.close()

        assert ws.close_count == 1
