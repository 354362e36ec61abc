"""Unit tests for signaling message models and relay envelope parsing."""

import json

import pytest
from pydantic import ValidationError

from peercall.errors import ProtocolViolation
from peercall.transport.protocol import (
    AnswerMessage,
    ConnectedEvent,
    IceCandidateMessage,
    JoinCallMessage,
    OfferMessage,
    OutboundSignalMessage,
    SignalEvent,
    UserJoinedEvent,
    UserLeftEvent,
    parse_event,
    parse_signal,
)


class TestSignalPayloads:
    """Test offer/answer/candidate payload models."""

    def test_offer_requires_sdp(self) -> None:
        """Test an empty offer is rejected."""
        with pytest.raises(ValidationError):
            OfferMessage(sdp="")

    def test_candidate_defaults(self) -> None:
        """Test an empty candidate is allowed (end-of-candidates)."""
        msg = IceCandidateMessage()
        assert msg.candidate == ""
        assert msg.sdp_mid is None
        assert msg.sdp_mline_index is None

    def test_parse_signal_by_type(self) -> None:
        """Test payloads are dispatched on their type tag."""
        assert parse_signal({"type": "offer", "sdp": "v=0"}) == OfferMessage(sdp="v=0")
        assert parse_signal({"type": "answer", "sdp": "v=0"}) == AnswerMessage(sdp="v=0")

        cand = parse_signal(
            {"type": "ice-candidate", "candidate": "candidate:1", "sdp_mid": "0", "sdp_mline_index": 0}
        )
        assert isinstance(cand, IceCandidateMessage)
        assert cand.sdp_mline_index == 0

    @pytest.mark.parametrize(
        "payload",
        [
            "offer",
            {"sdp": "v=0"},
            {"type": "renegotiate", "sdp": "v=0"},
            {"type": "answer"},
            {"type": "ice-candidate", "sdp_mline_index": -1},
        ],
    )
    def test_parse_signal_rejects_malformed(self, payload: object) -> None:
        """Test malformed payloads raise ProtocolViolation."""
        with pytest.raises(ProtocolViolation):
            parse_signal(payload)


class TestRelayEnvelope:
    """Test client → relay frames."""

    def test_join_frame(self) -> None:
        """Test the join frame names the room."""
        frame = json.loads(JoinCallMessage(room="ab12cd3").model_dump_json())
        assert frame == {"type": "join-call", "room": "ab12cd3"}

    def test_signal_frame(self) -> None:
        """Test outbound signals carry the target and the tagged payload."""
        frame = json.loads(
            OutboundSignalMessage(target="peer-1", signal=OfferMessage(sdp="v=0")).model_dump_json()
        )
        assert frame == {"type": "signal", "target": "peer-1", "signal": {"type": "offer", "sdp": "v=0"}}


class TestRelayEvents:
    """Test relay → client frames."""

    def test_parse_connected(self) -> None:
        """Test the session id assignment frame."""
        event = parse_event({"type": "connected", "participant_id": "peer-0"})
        assert event == ConnectedEvent(participant_id="peer-0")

    def test_parse_user_joined_and_left(self) -> None:
        """Test room membership frames."""
        assert parse_event({"type": "user-joined", "participant_id": "peer-1"}) == UserJoinedEvent(
            participant_id="peer-1"
        )
        assert parse_event({"type": "user-left"}) == UserLeftEvent()

    def test_parse_signal_event(self) -> None:
        """Test signal frames decode their nested payload."""
        event = parse_event(
            {"type": "signal", "sender": "peer-0", "signal": {"type": "answer", "sdp": "v=0"}}
        )
        assert isinstance(event, SignalEvent)
        assert event.sender == "peer-0"
        assert event.signal == AnswerMessage(sdp="v=0")

    @pytest.mark.parametrize(
        "frame",
        [
            [],
            {"type": "broadcast"},
            {"type": "user-joined"},
            {"type": "signal", "sender": "peer-0", "signal": {"type": "bye"}},
        ],
    )
    def test_parse_event_rejects_malformed(self, frame: object) -> None:
        """Test malformed frames raise ProtocolViolation."""
        with pytest.raises(ProtocolViolation):
            parse_event(frame)
