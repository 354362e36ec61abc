"""Signaling transport layer.

Provides the relay client abstraction and the JSON envelope protocol used to
exchange offers, answers and ICE candidates through a room-based relay.
"""

from peercall.transport.base import SignalingTransport
from peercall.transport.protocol import (
    AnswerMessage,
    IceCandidateMessage,
    OfferMessage,
    SignalingMessage,
    TransportEvent,
)
from peercall.transport.websocket_transport import WebSocketSignalingTransport

__all__ = [
    "SignalingTransport",
    "WebSocketSignalingTransport",
    "SignalingMessage",
    "OfferMessage",
    "AnswerMessage",
    "IceCandidateMessage",
    "TransportEvent",
]
