"""Signaling message protocol definitions.

Defines Pydantic models for the payloads exchanged between peers
(offer/answer/ICE candidate) and for the relay envelope that carries them.
Messages are JSON-encoded for the text-based WebSocket relay.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from peercall.errors import ProtocolViolation

# ----------------------------------------------------------------------------
# Peer-to-peer signaling payloads
# ----------------------------------------------------------------------------


class OfferMessage(BaseModel):
    """Initiator → Responder: session description offer."""

    type: Literal["offer"] = "offer"
    sdp: str = Field(..., min_length=1, description="Offer session description")


class AnswerMessage(BaseModel):
    """Responder → Initiator: session description answer."""

    type: Literal["answer"] = "answer"
    sdp: str = Field(..., min_length=1, description="Answer session description")


class IceCandidateMessage(BaseModel):
    """Either direction: a discovered network candidate.

    ``candidate`` is the SDP ``a=candidate`` attribute value, with or without
    the leading ``candidate:`` prefix. An empty string marks end-of-candidates.
    """

    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: str = Field(default="", description="Candidate attribute")
    sdp_mid: str | None = Field(default=None, description="Media stream id")
    sdp_mline_index: int | None = Field(default=None, ge=0, description="m-line index")


SignalingMessage = OfferMessage | AnswerMessage | IceCandidateMessage

_SIGNAL_TYPES: dict[str, type[BaseModel]] = {
    "offer": OfferMessage,
    "answer": AnswerMessage,
    "ice-candidate": IceCandidateMessage,
}


def parse_signal(data: Any) -> SignalingMessage:
    """Parse a signaling payload by its ``type`` tag.

    Args:
        data: Decoded JSON payload

    Returns:
        Typed signaling message

    Raises:
        ProtocolViolation: If the tag is unknown or the payload is invalid
    """
    if not isinstance(data, dict):
        raise ProtocolViolation(f"Signal payload must be an object, got {type(data).__name__}")

    model = _SIGNAL_TYPES.get(data.get("type", ""))
    if model is None:
        raise ProtocolViolation(f"Unknown signal type: {data.get('type')!r}")

    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise ProtocolViolation(f"Invalid {data['type']} signal: {e}") from e


# ----------------------------------------------------------------------------
# Relay envelope: client → relay
# ----------------------------------------------------------------------------


class JoinCallMessage(BaseModel):
    """Client → Relay: join a room."""

    type: Literal["join-call"] = "join-call"
    room: str = Field(..., min_length=1, description="Room token")


class OutboundSignalMessage(BaseModel):
    """Client → Relay: forward a signaling payload to one participant."""

    type: Literal["signal"] = "signal"
    target: str = Field(..., min_length=1, description="Target participant id")
    signal: SignalingMessage = Field(..., discriminator="type")


# ----------------------------------------------------------------------------
# Relay envelope: relay → client (inbound transport events)
# ----------------------------------------------------------------------------


class ConnectedEvent(BaseModel):
    """Relay → Client: connection accepted, session id assigned."""

    type: Literal["connected"] = "connected"
    participant_id: str = Field(..., min_length=1, description="Assigned session id")


class UserJoinedEvent(BaseModel):
    """Relay → Client: another participant is in the room."""

    type: Literal["user-joined"] = "user-joined"
    participant_id: str = Field(..., min_length=1, description="Remote session id")


class UserLeftEvent(BaseModel):
    """Relay → Client: a participant left the room."""

    type: Literal["user-left"] = "user-left"
    participant_id: str | None = Field(default=None, description="Remote session id")


class SignalEvent(BaseModel):
    """Relay → Client: signaling payload from another participant."""

    type: Literal["signal"] = "signal"
    sender: str = Field(..., min_length=1, description="Sender participant id")
    signal: SignalingMessage = Field(..., discriminator="type")


TransportEvent = ConnectedEvent | UserJoinedEvent | UserLeftEvent | SignalEvent

_EVENT_TYPES: dict[str, type[BaseModel]] = {
    "connected": ConnectedEvent,
    "user-joined": UserJoinedEvent,
    "user-left": UserLeftEvent,
    "signal": SignalEvent,
}


def parse_event(data: Any) -> TransportEvent:
    """Parse an inbound relay frame.

    Raises:
        ProtocolViolation: If the frame type is unknown or the frame is invalid
    """
    if not isinstance(data, dict):
        raise ProtocolViolation(f"Relay frame must be an object, got {type(data).__name__}")

    model = _EVENT_TYPES.get(data.get("type", ""))
    if model is None:
        raise ProtocolViolation(f"Unknown relay frame type: {data.get('type')!r}")

    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise ProtocolViolation(f"Invalid {data['type']} frame: {e}") from e
