"""Call controller.

Entry point for the UI layer: ``create_room``, ``join_room`` and ``hang_up``
plus read-only observation of the call phase, room token, remote peer and
last error message.

Relay events and negotiation callbacks are queued on the active call and
handled one at a time by a single consumer task, so every transition runs to
completion before the next event is looked at. ``hang_up`` does not go
through the queue: it disposes the call immediately and anything still in
flight notices the disposal when it resumes.
"""

import asyncio
import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from peercall.cleanup import SessionCleanup
from peercall.config import CallConfig
from peercall.errors import (
    CallError,
    CallInProgress,
    ConnectivityLost,
    MediaAcquisitionError,
    NoPeerAddressed,
    PeerDeparted,
    PrecursorMissing,
    TransportUnavailable,
)
from peercall.media import MediaSource, MicrophoneSource, RemoteMediaHandle
from peercall.metrics import CallMetrics
from peercall.negotiation.base import PeerConnectionFactory, PeerConnectionHandlers
from peercall.negotiation.session import NegotiationSession
from peercall.room import Role, RoomCoordinator
from peercall.session import (
    ActiveCall,
    CallEvent,
    ConnectionStateChanged,
    LocalCandidateFound,
    RemoteTrackArrived,
    TransportLost,
)
from peercall.state_machine import CallPhase, CallStateMachine, CallTrigger, PhaseListener
from peercall.transport.base import SignalingTransport
from peercall.transport.protocol import (
    AnswerMessage,
    ConnectedEvent,
    IceCandidateMessage,
    OfferMessage,
    SignalEvent,
    UserJoinedEvent,
    UserLeftEvent,
)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], SignalingTransport]
PeerFactory = PeerConnectionFactory
SinkFactory = Callable[[], Any]


def _default_transport_factory(config: CallConfig) -> TransportFactory:
    from peercall.transport.websocket_transport import WebSocketSignalingTransport

    return lambda: WebSocketSignalingTransport(
        connect_timeout_s=config.signaling.connect_timeout_s,
        max_message_size=config.signaling.max_message_size,
    )


def _default_peer_factory(config: CallConfig) -> PeerFactory:
    from peercall.negotiation.aiortc_peer import AiortcPeerConnection

    return lambda: AiortcPeerConnection(config.ice)


class CallController:
    """Runs one two-party call at a time."""

    def __init__(
        self,
        config: CallConfig | None = None,
        media_source: MediaSource | None = None,
        transport_factory: TransportFactory | None = None,
        peer_factory: PeerFactory | None = None,
        remote_sink_factory: SinkFactory | None = None,
    ) -> None:
        """Initialize call controller.

        Args:
            config: Call configuration (defaults if None)
            media_source: Local audio acquisition (system microphone if None)
            transport_factory: Builds a fresh relay client per call attempt
            peer_factory: Builds a fresh negotiation primitive per call attempt
            remote_sink_factory: Builds a consumer for remote audio (e.g. a
                ``MediaRecorder``); remote audio is only held if None
        """
        self._config = config or CallConfig()
        self._media_source = media_source or MicrophoneSource(self._config.media)
        self._transport_factory = transport_factory or _default_transport_factory(self._config)
        self._peer_factory = peer_factory or _default_peer_factory(self._config)
        self._remote_sink_factory = remote_sink_factory

        self._machine = CallStateMachine()
        self._cleanup = SessionCleanup()
        self._call: ActiveCall | None = None
        self._last_call: ActiveCall | None = None
        self._error_message = ""
        self._phase_changed = asyncio.Event()
        self._machine.add_listener(self._on_phase_change)

    # ------------------------------------------------------------------
    # Read-only observation
    # ------------------------------------------------------------------

    @property
    def phase(self) -> CallPhase:
        return self._machine.phase

    @property
    def room_token(self) -> str | None:
        if self._call is None or self._call.room is None:
            return None
        return self._call.room.room_token

    @property
    def remote_participant_id(self) -> str | None:
        if self._call is None or self._call.room is None:
            return None
        return self._call.room.remote_participant_id

    @property
    def role(self) -> Role | None:
        if self._call is None or self._call.room is None:
            return None
        return self._call.room.role

    @property
    def error_message(self) -> str:
        """Last user-facing message (empty if none)."""
        return self._error_message

    @property
    def active_call(self) -> ActiveCall | None:
        return self._call

    @property
    def metrics(self) -> CallMetrics | None:
        """Metrics of the current call, or of the last one if idle."""
        call = self._call or self._last_call
        return call.metrics if call is not None else None

    def add_phase_listener(self, listener: PhaseListener) -> None:
        """Observe phase changes (called after every applied transition)."""
        self._machine.add_listener(listener)

    async def wait_for_phase(self, *phases: CallPhase, timeout: float | None = None) -> CallPhase:
        """Wait until the call reaches one of ``phases``.

        Raises:
            TimeoutError: If none is reached within ``timeout`` seconds
        """

        async def _wait() -> CallPhase:
            while self._machine.phase not in phases:
                await self._phase_changed.wait()
            return self._machine.phase

        return await asyncio.wait_for(_wait(), timeout=timeout)

    # ------------------------------------------------------------------
    # User controls
    # ------------------------------------------------------------------

    async def create_room(self, token: str | None = None) -> str | None:
        """Start a call as initiator in a freshly generated room.

        Args:
            token: Use this room token instead of generating one

        Returns:
            Room token to share, or None if the attempt ended early (see
            ``phase`` and ``error_message``)

        Raises:
            CallInProgress: If a call attempt is already active
        """
        return await self._start(Role.INITIATOR, token)

    async def join_room(self, token: str | None = None) -> str | None:
        """Start a call as responder in ``token`` (or the default room if blank).

        Returns:
            Room token joined, or None if the attempt ended early

        Raises:
            CallInProgress: If a call attempt is already active
        """
        return await self._start(Role.RESPONDER, token)

    async def hang_up(self) -> None:
        """End the current call attempt immediately (no-op when idle)."""
        call = self._call
        if call is None:
            await self._cleanup.teardown(None, reason="user-hang-up")
            if self._machine.phase is CallPhase.ERROR:
                self._error_message = ""
                self._machine.fire(CallTrigger.USER_HANG_UP)
            return

        await self._end(call, CallTrigger.USER_HANG_UP, None)

    def get_metrics_summary(self) -> dict[str, str | float | int | None]:
        """Get call metrics summary for logging/monitoring."""
        call = self._call or self._last_call
        metrics = self.metrics or CallMetrics()
        return {
            "call_id": call.call_id if call is not None else None,
            "phase": self.phase.value,
            "time_to_connect_ms": metrics.time_to_connect_ms(),
            "offers_sent": metrics.offers_sent,
            "answers_sent": metrics.answers_sent,
            "local_candidates_sent": metrics.local_candidates_sent,
            "remote_candidates_received": metrics.remote_candidates_received,
            "remote_candidates_failed": metrics.remote_candidates_failed,
            "signals_dropped": metrics.signals_dropped,
        }

    # ------------------------------------------------------------------
    # Call setup
    # ------------------------------------------------------------------

    async def _start(self, role: Role, token: str | None) -> str | None:
        if self._call is not None or self._machine.is_active:
            raise CallInProgress(f"Call already in progress (phase={self.phase.value})")

        request = CallTrigger.REQUEST_CREATE if role is Role.INITIATOR else CallTrigger.REQUEST_JOIN
        if not self._machine.can_fire(request):
            raise CallInProgress(f"Cannot start a call from phase {self.phase.value}")

        call = ActiveCall()
        self._call = call
        self._last_call = call
        self._error_message = ""
        self._machine.fire(request)

        logger.info("Call attempt started", extra={"call_id": call.call_id, "role": role.value})

        try:
            media = await self._media_source.request_audio_input()
        except MediaAcquisitionError as e:
            logger.warning(
                "Audio input refused",
                extra={"call_id": call.call_id, "error": str(e)},
            )
            await self._end(call, CallTrigger.MEDIA_DENIED, e)
            return None

        if call.disposed:
            media.release()
            return None

        call.local_media = media
        call.metrics.record_media_acquired()
        self._machine.fire(CallTrigger.MEDIA_OK)

        transport = self._transport_factory()
        room = RoomCoordinator(
            transport,
            default_room=self._config.room.default_room,
            token_length=self._config.room.token_length,
        )
        call.transport = transport
        call.room = room

        try:
            await transport.connect(self._config.signaling.url)
            if call.disposed:
                return None
            self._spawn(call, self._pump_transport(call, transport))

            if role is Role.INITIATOR:
                room_token = await room.create_room(token)
            else:
                room_token = await room.join_room(token)
        except TransportUnavailable as e:
            await self._end(call, CallTrigger.TRANSPORT_FAILED, e)
            return None

        if call.disposed:
            return None

        call.metrics.record_room_ready()
        if role is Role.RESPONDER:
            self._start_negotiation(call)
        self._machine.fire(CallTrigger.ROOM_READY)

        self._spawn(call, self._consume_events(call))

        logger.info(
            "Room ready",
            extra={"call_id": call.call_id, "room": room_token, "role": role.value},
        )
        return room_token

    def _start_negotiation(self, call: ActiveCall) -> NegotiationSession:
        assert call.transport is not None and call.room is not None
        assert call.local_media is not None

        peer = self._peer_factory()
        peer.set_handlers(
            PeerConnectionHandlers(
                on_track=lambda track: call.post(RemoteTrackArrived(track)),
                on_ice_candidate=lambda candidate: call.post(LocalCandidateFound(candidate)),
                on_connection_state_change=lambda state: call.post(ConnectionStateChanged(state)),
            )
        )

        session = NegotiationSession(
            peer,
            call.transport,
            call.room,
            on_connected=partial(self._on_media_connected, call),
            metrics=call.metrics,
        )
        session.attach_local_media(call.local_media)
        call.negotiation = session
        return session

    def _spawn(self, call: ActiveCall, coro: Any) -> None:
        task = asyncio.create_task(coro)
        call.tasks.add(task)
        task.add_done_callback(call.tasks.discard)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def _pump_transport(self, call: ActiveCall, transport: SignalingTransport) -> None:
        try:
            async for event in transport.events():
                call.post(event)
        except TransportUnavailable as e:
            call.post(TransportLost(e))
        except Exception as e:
            logger.exception(
                "Relay event stream failed",
                extra={"call_id": call.call_id, "error": str(e)},
            )
            call.post(TransportLost(TransportUnavailable(f"Relay event stream failed: {e}")))

    async def _consume_events(self, call: ActiveCall) -> None:
        while not call.disposed:
            event = await call.events.get()
            if call.disposed:
                break
            try:
                await self._handle_event(call, event)
            except TransportUnavailable as e:
                await self._end(call, CallTrigger.TRANSPORT_FAILED, e)
            except (PrecursorMissing, NoPeerAddressed) as e:
                logger.error(
                    "Negotiation step out of order",
                    extra={"call_id": call.call_id, "error": str(e)},
                )
            except Exception as e:
                logger.exception(
                    "Unexpected error handling call event",
                    extra={
                        "call_id": call.call_id,
                        "event": type(event).__name__,
                        "error": str(e),
                    },
                )
                await self._end(call, CallTrigger.CONNECTIVITY_LOST, ConnectivityLost())

    async def _handle_event(self, call: ActiveCall, event: CallEvent) -> None:
        room = call.room
        assert room is not None

        if isinstance(event, ConnectedEvent):
            logger.debug("Relay connected", extra={"participant_id": event.participant_id})

        elif isinstance(event, UserJoinedEvent):
            await self._handle_user_joined(call, room, event.participant_id)

        elif isinstance(event, UserLeftEvent):
            if room.handle_user_left(event.participant_id):
                await self._end(call, CallTrigger.PEER_LEFT, PeerDeparted())

        elif isinstance(event, SignalEvent):
            await self._handle_signal(call, room, event)

        elif isinstance(event, RemoteTrackArrived):
            if call.negotiation is not None:
                await call.negotiation.on_remote_track_received(event.track)

        elif isinstance(event, LocalCandidateFound):
            if call.negotiation is not None:
                await call.negotiation.publish_local_candidate(event.candidate)

        elif isinstance(event, ConnectionStateChanged):
            if call.negotiation is not None and call.negotiation.on_connectivity_changed(event.state):
                await self._end(call, CallTrigger.CONNECTIVITY_LOST, ConnectivityLost())

        elif isinstance(event, TransportLost):
            await self._end(call, CallTrigger.TRANSPORT_FAILED, event.error)

    async def _handle_user_joined(self, call: ActiveCall, room: RoomCoordinator, participant_id: str) -> None:
        if participant_id == room.remote_participant_id:
            return
        if call.negotiation is not None and room.remote_participant_id is not None:
            logger.warning(
                "Ignoring join while a negotiation is active",
                extra={"call_id": call.call_id, "participant_id": participant_id},
            )
            return

        if not room.handle_user_joined(participant_id):
            return

        if not room.should_originate_offer:
            return

        if self._machine.phase is not CallPhase.WAITING_FOR_PEER:
            logger.warning(
                "Peer joined outside waiting-for-peer",
                extra={"call_id": call.call_id, "phase": self.phase.value},
            )
            return

        session = self._start_negotiation(call)
        self._machine.fire(CallTrigger.PEER_JOINED)
        await session.create_offer()

    async def _handle_signal(self, call: ActiveCall, room: RoomCoordinator, event: SignalEvent) -> None:
        session = call.negotiation
        message = event.signal

        if session is None:
            call.metrics.signals_dropped += 1
            logger.warning(
                "Signal received with no negotiation session, dropped",
                extra={"call_id": call.call_id, "signal_type": message.type, "sender": event.sender},
            )
            return

        if isinstance(message, OfferMessage):
            if not room.adopt_offer_sender(event.sender):
                call.metrics.signals_dropped += 1
                logger.warning(
                    "Offer from unknown participant, dropped",
                    extra={"call_id": call.call_id, "sender": event.sender},
                )
                return
            await session.handle_remote_offer(event.sender, message)
            return

        if event.sender != room.remote_participant_id:
            call.metrics.signals_dropped += 1
            logger.warning(
                "Signal from unknown participant, dropped",
                extra={"call_id": call.call_id, "signal_type": message.type, "sender": event.sender},
            )
            return

        if isinstance(message, AnswerMessage):
            await session.handle_remote_answer(event.sender, message)
        elif isinstance(message, IceCandidateMessage):
            await session.handle_remote_candidate(message)

    async def _on_media_connected(self, call: ActiveCall, track: Any) -> None:
        if call.disposed:
            return

        sink = self._remote_sink_factory() if self._remote_sink_factory is not None else None
        remote = RemoteMediaHandle(track, sink=sink)
        call.remote_media = remote
        await remote.start()

        call.metrics.record_connected()
        self._machine.fire(CallTrigger.REMOTE_TRACK_RECEIVED)

    # ------------------------------------------------------------------
    # Call end
    # ------------------------------------------------------------------

    async def _end(self, call: ActiveCall, trigger: CallTrigger, error: CallError | None) -> None:
        if self._call is not call:
            return
        self._call = None
        self._error_message = error.user_message if error is not None else ""

        logger.info(
            "Call ending",
            extra={
                "call_id": call.call_id,
                "trigger": trigger.value,
                "phase": self.phase.value,
            },
        )

        await self._cleanup.teardown(call, reason=trigger.value)
        self._machine.fire(trigger)

    def _on_phase_change(self, old: CallPhase, new: CallPhase, trigger: CallTrigger) -> None:
        self._phase_changed.set()
        self._phase_changed = asyncio.Event()
