"""Offer/answer/ICE negotiation for one call.

``NegotiationSession`` drives exactly one description exchange over the
signaling transport and accumulates candidates until the media path is live
or the session is terminated. Duplicate or out-of-order signaling is logged
and dropped; it never aborts the call.
"""

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from peercall.errors import NoPeerAddressed, PrecursorMissing
from peercall.media import LocalMediaHandle
from peercall.metrics import CallMetrics
from peercall.negotiation.base import (
    TERMINAL_CONNECTION_STATES,
    PeerConnection,
    SessionDescription,
)
from peercall.room import Role, RoomCoordinator
from peercall.transport.base import SignalingTransport
from peercall.transport.protocol import AnswerMessage, IceCandidateMessage, OfferMessage

logger = logging.getLogger(__name__)


class NegotiationState(Enum):
    """Negotiation states.

    State Transitions:
    - IDLE → OFFER_SENT → ANSWER_RECEIVED → CONNECTED (initiator)
    - IDLE → OFFER_RECEIVED → ANSWER_SENT → CONNECTED (responder)
    - * → TERMINATED (close or connectivity failure, absorbing)
    """

    IDLE = "idle"
    OFFER_SENT = "offer-sent"
    OFFER_RECEIVED = "offer-received"
    ANSWER_SENT = "answer-sent"
    ANSWER_RECEIVED = "answer-received"
    CONNECTED = "connected"
    TERMINATED = "terminated"


# Description exchange is complete in these states
_EXCHANGE_COMPLETE = frozenset({NegotiationState.ANSWER_SENT, NegotiationState.ANSWER_RECEIVED})

ConnectedCallback = Callable[[Any], Awaitable[None]]


class NegotiationSession:
    """Owns one peer connection's negotiation lifecycle."""

    def __init__(
        self,
        peer: PeerConnection,
        transport: SignalingTransport,
        room: RoomCoordinator,
        on_connected: ConnectedCallback,
        metrics: CallMetrics | None = None,
    ) -> None:
        """Initialize negotiation session.

        Args:
            peer: Negotiation primitive (handlers are registered by the caller)
            transport: Relay client used to publish descriptions and candidates
            room: Source of the role and the current remote participant
            on_connected: Awaited once, with the first remote track, when the
                media path is live
            metrics: Call metrics to update
        """
        if room.role is None:
            raise PrecursorMissing("Role must be assigned before negotiation starts")

        self._peer = peer
        self._transport = transport
        self._room = room
        self._role: Role = room.role
        self._on_connected = on_connected
        self._metrics = metrics or CallMetrics()

        self.state = NegotiationState.IDLE
        self._media_attached = False
        self._local_description_started = False
        self._remote_description_set = False
        self._answer_pending = False
        self._pending_candidates: list[IceCandidateMessage] = []
        self._remote_track: Any = None

        self.offers_sent = 0
        self.answers_sent = 0

    @property
    def role(self) -> Role:
        return self._role

    @property
    def is_terminated(self) -> bool:
        return self.state is NegotiationState.TERMINATED

    @property
    def remote_track(self) -> Any:
        """First inbound media track, or None."""
        return self._remote_track

    @property
    def pending_candidate_count(self) -> int:
        """Remote candidates waiting for the remote description."""
        return len(self._pending_candidates)

    def attach_local_media(self, media: LocalMediaHandle) -> None:
        """Bind outgoing audio tracks.

        Raises:
            PrecursorMissing: If negotiation already started or media is attached
        """
        if self.is_terminated:
            raise PrecursorMissing("Negotiation session is terminated")
        if self._media_attached or self._local_description_started or self._remote_description_set:
            raise PrecursorMissing("Local media must be attached before negotiation starts")

        for track in media.tracks:
            self._peer.add_track(track)
        self._media_attached = True

        logger.debug("Local media attached", extra={"tracks": len(media.tracks)})

    async def create_offer(self) -> bool:
        """Create, apply and publish the local offer.

        Returns:
            True if an offer was sent; False if the request was ignored
            (wrong role, duplicate trigger, or session terminated)

        Raises:
            PrecursorMissing: If local media is not attached
            NoPeerAddressed: If no remote participant is known
            TransportUnavailable: If the relay send fails
        """
        if self.is_terminated:
            return False
        if self._role is not Role.INITIATOR:
            return self._drop("Offer requested by responder")
        if self._local_description_started:
            return self._drop("Offer already created")
        if not self._media_attached:
            raise PrecursorMissing("Local media must be attached before creating an offer")

        target = self._room.remote_participant_id
        if target is None:
            raise NoPeerAddressed("No remote participant to send the offer to")

        self._local_description_started = True
        logger.info("Creating offer", extra={"target": target})

        offer = await self._peer.create_offer()
        if self.is_terminated:
            return False
        await self._peer.set_local_description(offer)
        if self.is_terminated:
            return False

        description = self._peer.local_description or offer
        await self._transport.send(target, OfferMessage(sdp=description.sdp))

        self.state = NegotiationState.OFFER_SENT
        self.offers_sent += 1
        self._metrics.offers_sent += 1
        logger.info("Offer sent", extra={"target": target})
        return True

    async def handle_remote_offer(self, sender: str, message: OfferMessage) -> bool:
        """Apply a remote offer and answer it.

        Returns:
            True if an answer was sent; False if the offer was ignored
        """
        if self.is_terminated:
            return False
        if self._answer_pending or self.state in _EXCHANGE_COMPLETE or self.state is NegotiationState.CONNECTED:
            return self._drop("Duplicate offer after answer", sender=sender)
        if self._role is Role.INITIATOR and self._local_description_started:
            return self._drop("Offer received while own offer is outstanding", sender=sender)
        if not self._media_attached:
            raise PrecursorMissing("Local media must be attached before answering")

        self._answer_pending = True
        self.state = NegotiationState.OFFER_RECEIVED
        logger.info("Received offer", extra={"sender": sender})

        try:
            await self._peer.set_remote_description(SessionDescription(type="offer", sdp=message.sdp))
        except ValueError as e:
            self._answer_pending = False
            self.state = NegotiationState.IDLE
            return self._drop(f"Unusable offer: {e}", sender=sender)
        if self.is_terminated:
            return False

        self._remote_description_set = True
        await self._flush_pending_candidates()
        if self.is_terminated:
            return False

        self._local_description_started = True
        answer = await self._peer.create_answer()
        if self.is_terminated:
            return False
        await self._peer.set_local_description(answer)
        if self.is_terminated:
            return False

        description = self._peer.local_description or answer
        await self._transport.send(sender, AnswerMessage(sdp=description.sdp))

        self.state = NegotiationState.ANSWER_SENT
        self.answers_sent += 1
        self._metrics.answers_sent += 1
        logger.info("Sent answer", extra={"target": sender})

        await self._maybe_connected()
        return True

    async def handle_remote_answer(self, sender: str, message: AnswerMessage) -> bool:
        """Apply the remote answer to the outstanding local offer.

        Returns:
            True if the answer was applied; False if it was ignored
        """
        if self.is_terminated:
            return False
        if self.state is not NegotiationState.OFFER_SENT or self._remote_description_set:
            return self._drop("Answer without pending offer", sender=sender)

        self._remote_description_set = True
        logger.info("Received answer", extra={"sender": sender})

        try:
            await self._peer.set_remote_description(SessionDescription(type="answer", sdp=message.sdp))
        except ValueError as e:
            self._remote_description_set = False
            return self._drop(f"Unusable answer: {e}", sender=sender)
        if self.is_terminated:
            return False

        self.state = NegotiationState.ANSWER_RECEIVED
        await self._flush_pending_candidates()
        await self._maybe_connected()
        return True

    async def handle_remote_candidate(self, candidate: IceCandidateMessage) -> None:
        """Apply a remote candidate, or queue it until the remote description is set."""
        if self.is_terminated:
            return

        self._metrics.remote_candidates_received += 1

        if not self._remote_description_set:
            self._pending_candidates.append(candidate)
            logger.debug(
                "Queued early ICE candidate",
                extra={"pending": len(self._pending_candidates)},
            )
            return

        await self._apply_candidate(candidate)

    async def publish_local_candidate(self, candidate: IceCandidateMessage) -> bool:
        """Send a locally discovered candidate to the current remote participant.

        Returns:
            True if sent; False if dropped (no peer known, or terminated)
        """
        if self.is_terminated:
            return False

        target = self._room.remote_participant_id
        if target is None:
            self._metrics.local_candidates_dropped += 1
            logger.debug("Dropping local ICE candidate, no peer known")
            return False

        await self._transport.send(target, candidate)
        self._metrics.local_candidates_sent += 1
        return True

    async def on_remote_track_received(self, track: Any) -> bool:
        """Record inbound media. Only the first track counts.

        Returns:
            True if this call transitioned the session to CONNECTED
        """
        if self.is_terminated or self._remote_track is not None:
            return False

        self._remote_track = track
        logger.info("Remote track received", extra={"kind": getattr(track, "kind", None)})
        return await self._maybe_connected()

    def on_connectivity_changed(self, state: str) -> bool:
        """Observe the media path state.

        Returns:
            True if ``state`` is terminal for this (still live) session
        """
        if self.is_terminated:
            return False

        logger.info("Connection state changed", extra={"connection_state": state})
        return state in TERMINAL_CONNECTION_STATES

    async def close(self) -> None:
        """Terminate negotiation and release the peer connection (idempotent)."""
        if self.is_terminated:
            return

        self.state = NegotiationState.TERMINATED
        self._pending_candidates.clear()
        self._remote_track = None

        try:
            await self._peer.close()
        except Exception as e:
            logger.warning("Error closing peer connection", extra={"error": str(e)})

        logger.info("Negotiation session closed")

    async def _maybe_connected(self) -> bool:
        if (
            self.state in _EXCHANGE_COMPLETE
            and self._remote_track is not None
        ):
            self.state = NegotiationState.CONNECTED
            await self._on_connected(self._remote_track)
            return True
        return False

    async def _flush_pending_candidates(self) -> None:
        pending, self._pending_candidates = self._pending_candidates, []
        if pending:
            logger.debug("Applying queued ICE candidates", extra={"count": len(pending)})
        for candidate in pending:
            if self.is_terminated:
                return
            await self._apply_candidate(candidate)

    async def _apply_candidate(self, candidate: IceCandidateMessage) -> None:
        try:
            await self._peer.add_ice_candidate(candidate)
        except ValueError as e:
            self._metrics.remote_candidates_failed += 1
            logger.warning("Error adding received ICE candidate", extra={"error": str(e)})

    def _drop(self, reason: str, **extra: Any) -> bool:
        self._metrics.signals_dropped += 1
        logger.warning(
            "Protocol violation, signal dropped",
            extra={"reason": reason, "state": self.state.value, **extra},
        )
        return False
