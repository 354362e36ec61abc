"""Offer/answer/ICE negotiation."""

from peercall.negotiation.base import PeerConnection, PeerConnectionHandlers, SessionDescription
from peercall.negotiation.session import NegotiationSession, NegotiationState

__all__ = [
    "PeerConnection",
    "PeerConnectionHandlers",
    "SessionDescription",
    "NegotiationSession",
    "NegotiationState",
]
