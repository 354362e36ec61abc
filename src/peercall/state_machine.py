"""Call phase state machine.

Single source of truth for the user-visible call phase. Components report
triggers; the machine applies only the edges in ``TRANSITIONS`` and treats
everything else as a logged no-op.
"""

import logging
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class CallPhase(Enum):
    """User-visible call phases.

    State Transitions:
    - IDLE → ACQUIRING_MEDIA (on create or join request)
    - ACQUIRING_MEDIA → CREATING_ROOM (media granted, create flow)
    - ACQUIRING_MEDIA → JOINING (media granted, join flow)
    - ACQUIRING_MEDIA → ERROR (media denied)
    - CREATING_ROOM → WAITING_FOR_PEER (room joined on relay)
    - WAITING_FOR_PEER → NEGOTIATING (peer arrived)
    - JOINING → NEGOTIATING (room joined on relay)
    - NEGOTIATING → CONNECTED (first remote track)
    - * → IDLE (peer left, connectivity lost, user hang-up)
    - * → ERROR (relay unreachable)
    - ERROR → ACQUIRING_MEDIA (retry)
    """

    IDLE = "idle"
    ACQUIRING_MEDIA = "acquiring-media"
    CREATING_ROOM = "creating-room"
    WAITING_FOR_PEER = "waiting-for-peer"
    JOINING = "joining"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    ERROR = "error"


class CallTrigger(Enum):
    """Events that drive phase transitions."""

    REQUEST_CREATE = "request-create"
    REQUEST_JOIN = "request-join"
    MEDIA_OK = "media-ok"
    MEDIA_DENIED = "media-denied"
    ROOM_READY = "room-ready"
    PEER_JOINED = "peer-joined"
    REMOTE_TRACK_RECEIVED = "remote-track-received"
    PEER_LEFT = "peer-left"
    CONNECTIVITY_LOST = "connectivity-lost"
    USER_HANG_UP = "user-hang-up"
    TRANSPORT_FAILED = "transport-failed"


# Phases with an active call attempt
ACTIVE_PHASES: frozenset[CallPhase] = frozenset(
    {
        CallPhase.ACQUIRING_MEDIA,
        CallPhase.CREATING_ROOM,
        CallPhase.WAITING_FOR_PEER,
        CallPhase.JOINING,
        CallPhase.NEGOTIATING,
        CallPhase.CONNECTED,
    }
)

_TO_IDLE = {
    CallTrigger.PEER_LEFT: CallPhase.IDLE,
    CallTrigger.CONNECTIVITY_LOST: CallPhase.IDLE,
    CallTrigger.USER_HANG_UP: CallPhase.IDLE,
}

_AFTER_RELAY = {**_TO_IDLE, CallTrigger.TRANSPORT_FAILED: CallPhase.ERROR}

# MEDIA_OK out of ACQUIRING_MEDIA depends on the flow and is resolved
# in CallStateMachine._target().
TRANSITIONS: dict[CallPhase, dict[CallTrigger, CallPhase]] = {
    CallPhase.IDLE: {
        CallTrigger.REQUEST_CREATE: CallPhase.ACQUIRING_MEDIA,
        CallTrigger.REQUEST_JOIN: CallPhase.ACQUIRING_MEDIA,
    },
    CallPhase.ACQUIRING_MEDIA: {
        CallTrigger.MEDIA_DENIED: CallPhase.ERROR,
        **_TO_IDLE,
    },
    CallPhase.CREATING_ROOM: {
        CallTrigger.ROOM_READY: CallPhase.WAITING_FOR_PEER,
        **_AFTER_RELAY,
    },
    CallPhase.WAITING_FOR_PEER: {
        CallTrigger.PEER_JOINED: CallPhase.NEGOTIATING,
        **_AFTER_RELAY,
    },
    CallPhase.JOINING: {
        CallTrigger.ROOM_READY: CallPhase.NEGOTIATING,
        **_AFTER_RELAY,
    },
    CallPhase.NEGOTIATING: {
        CallTrigger.REMOTE_TRACK_RECEIVED: CallPhase.CONNECTED,
        **_AFTER_RELAY,
    },
    CallPhase.CONNECTED: dict(_AFTER_RELAY),
    CallPhase.ERROR: {
        CallTrigger.REQUEST_CREATE: CallPhase.ACQUIRING_MEDIA,
        CallTrigger.REQUEST_JOIN: CallPhase.ACQUIRING_MEDIA,
        CallTrigger.USER_HANG_UP: CallPhase.IDLE,
    },
}

PhaseListener = Callable[[CallPhase, CallPhase, CallTrigger], None]


class CallStateMachine:
    """Holds the current call phase and applies validated transitions."""

    def __init__(self) -> None:
        self._phase = CallPhase.IDLE
        self._flow: CallTrigger | None = None
        self._listeners: list[PhaseListener] = []

    @property
    def phase(self) -> CallPhase:
        """Current call phase."""
        return self._phase

    @property
    def is_active(self) -> bool:
        """True while a call attempt is in progress."""
        return self._phase in ACTIVE_PHASES

    def add_listener(self, listener: PhaseListener) -> None:
        """Register a callback invoked after every applied transition."""
        self._listeners.append(listener)

    def can_fire(self, trigger: CallTrigger) -> bool:
        """Check whether ``trigger`` is a valid edge from the current phase."""
        return self._target(trigger) is not None

    def fire(self, trigger: CallTrigger) -> bool:
        """Apply a trigger.

        Args:
            trigger: Event to apply

        Returns:
            True if the phase changed, False if the trigger is not a valid
            edge from the current phase (the phase is left untouched)
        """
        target = self._target(trigger)
        if target is None:
            logger.warning(
                "Ignoring invalid call transition",
                extra={"from_phase": self._phase.value, "trigger": trigger.value},
            )
            return False

        if trigger in (CallTrigger.REQUEST_CREATE, CallTrigger.REQUEST_JOIN):
            self._flow = trigger
        elif target in (CallPhase.IDLE, CallPhase.ERROR):
            self._flow = None

        old_phase = self._phase
        self._phase = target

        logger.info(
            "Call phase transition",
            extra={
                "from_phase": old_phase.value,
                "to_phase": target.value,
                "trigger": trigger.value,
            },
        )

        for listener in list(self._listeners):
            listener(old_phase, target, trigger)

        return True

    def _target(self, trigger: CallTrigger) -> CallPhase | None:
        if self._phase is CallPhase.ACQUIRING_MEDIA and trigger is CallTrigger.MEDIA_OK:
            if self._flow is CallTrigger.REQUEST_CREATE:
                return CallPhase.CREATING_ROOM
            if self._flow is CallTrigger.REQUEST_JOIN:
                return CallPhase.JOINING
            return None
        return TRANSITIONS.get(self._phase, {}).get(trigger)
