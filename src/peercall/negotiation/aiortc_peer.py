"""aiortc-backed negotiation primitive.

aiortc gathers all ICE candidates during ``setLocalDescription`` and embeds
them in the local SDP (no trickle), so ``on_ice_candidate`` is never invoked
here; remote trickled candidates are still accepted.
"""

import logging
from typing import Any

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.exceptions import InvalidAccessError, InvalidStateError
from aiortc.sdp import candidate_from_sdp

from peercall.config import IceConfig
from peercall.negotiation.base import (
    PeerConnection,
    PeerConnectionHandlers,
    SessionDescription,
)
from peercall.transport.protocol import IceCandidateMessage

logger = logging.getLogger(__name__)


def build_rtc_configuration(config: IceConfig) -> RTCConfiguration:
    """Translate ICE configuration into aiortc's ``RTCConfiguration``."""
    return RTCConfiguration(
        iceServers=[
            RTCIceServer(urls=server.urls, username=server.username, credential=server.credential)
            for server in config.servers
        ]
    )


class AiortcPeerConnection(PeerConnection):
    """``PeerConnection`` over ``aiortc.RTCPeerConnection``."""

    def __init__(self, config: IceConfig | None = None) -> None:
        self._pc = RTCPeerConnection(build_rtc_configuration(config or IceConfig()))
        self._handlers: PeerConnectionHandlers | None = None
        self._closed = False

    def set_handlers(self, handlers: PeerConnectionHandlers) -> None:
        self._handlers = handlers

        @self._pc.on("track")
        def on_track(track: Any) -> None:
            logger.debug("aiortc track received", extra={"kind": track.kind})
            if track.kind == "audio":
                handlers.on_track(track)

        @self._pc.on("connectionstatechange")
        def on_connection_state_change() -> None:
            handlers.on_connection_state_change(self._pc.connectionState)

    def add_track(self, track: Any) -> None:
        self._pc.addTrack(track)

    async def create_offer(self) -> SessionDescription:
        try:
            offer = await self._pc.createOffer()
        except (InvalidAccessError, InvalidStateError) as e:
            raise ValueError(f"Cannot create offer: {e}") from e
        return SessionDescription(type=offer.type, sdp=offer.sdp)

    async def create_answer(self) -> SessionDescription:
        try:
            answer = await self._pc.createAnswer()
        except (InvalidAccessError, InvalidStateError) as e:
            raise ValueError(f"Cannot create answer: {e}") from e
        return SessionDescription(type=answer.type, sdp=answer.sdp)

    async def set_local_description(self, description: SessionDescription) -> None:
        try:
            await self._pc.setLocalDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except (InvalidAccessError, InvalidStateError) as e:
            raise ValueError(f"Local {description.type} rejected: {e}") from e

    async def set_remote_description(self, description: SessionDescription) -> None:
        try:
            await self._pc.setRemoteDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except (InvalidAccessError, InvalidStateError) as e:
            raise ValueError(f"Remote {description.type} rejected: {e}") from e

    async def add_ice_candidate(self, candidate: IceCandidateMessage) -> None:
        raw = candidate.candidate
        if raw.startswith("candidate:"):
            raw = raw[len("candidate:"):]
        if not raw:
            # end-of-candidates
            return

        try:
            rtc_candidate = candidate_from_sdp(raw)
        except (AssertionError, IndexError, ValueError) as e:
            raise ValueError(f"Unparseable ICE candidate: {candidate.candidate!r}") from e

        rtc_candidate.sdpMid = candidate.sdp_mid
        rtc_candidate.sdpMLineIndex = candidate.sdp_mline_index
        await self._pc.addIceCandidate(rtc_candidate)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._pc.close()

    @property
    def local_description(self) -> SessionDescription | None:
        desc = self._pc.localDescription
        if desc is None:
            return None
        return SessionDescription(type=desc.type, sdp=desc.sdp)

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState
