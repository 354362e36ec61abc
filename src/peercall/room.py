"""Room coordination and role assignment.

Decides who originates the offer: the participant that created the room is
the initiator and sends an offer when the peer arrives; a participant that
joins an existing room is the responder and only ever answers.
"""

import logging
import secrets
import string
from enum import Enum

from peercall.errors import RoleAlreadyAssigned
from peercall.transport.base import SignalingTransport

logger = logging.getLogger(__name__)

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


class Role(Enum):
    """Local participant role for one call."""

    INITIATOR = "initiator"
    RESPONDER = "responder"


def generate_room_token(length: int = 7) -> str:
    """Generate a random base-36 room token (e.g. ``ab12cd3``)."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def resolve_room_token(token: str | None, default_room: str) -> str:
    """Return ``token`` stripped, or ``default_room`` when it is absent or blank."""
    if token is None:
        return default_room
    token = token.strip()
    return token or default_room


class RoomCoordinator:
    """Owns room-join semantics and the local/remote participant records."""

    def __init__(
        self,
        transport: SignalingTransport,
        default_room: str,
        token_length: int = 7,
    ) -> None:
        """Initialize room coordinator.

        Args:
            transport: Relay client for this call attempt
            default_room: Room used when joining without a token
            token_length: Length of generated room tokens
        """
        self._transport = transport
        self._default_room = default_room
        self._token_length = token_length

        self._role: Role | None = None
        self._room_token: str | None = None
        self._remote_participant_id: str | None = None
        self._peer_seen = False

    @property
    def role(self) -> Role | None:
        return self._role

    @property
    def room_token(self) -> str | None:
        return self._room_token

    @property
    def remote_participant_id(self) -> str | None:
        return self._remote_participant_id

    @property
    def should_originate_offer(self) -> bool:
        """Only the initiator sends an offer, and only on peer arrival."""
        return self._role is Role.INITIATOR

    def assign_role(self, role: Role) -> None:
        """Set the local role once for this call.

        Raises:
            RoleAlreadyAssigned: If a different role is already set
        """
        if self._role is not None and self._role is not role:
            raise RoleAlreadyAssigned(
                f"Role already assigned: {self._role.value}, refusing {role.value}"
            )
        self._role = role

    async def create_room(self, token: str | None = None) -> str:
        """Generate a room token, become the initiator and join the room.

        Args:
            token: Pre-generated token (mostly for tests); generated if None

        Returns:
            The room token to share with the peer
        """
        self.assign_role(Role.INITIATOR)
        self._room_token = token or generate_room_token(self._token_length)

        logger.info("Creating room", extra={"room": self._room_token})
        await self._transport.join_room(self._room_token)
        return self._room_token

    async def join_room(self, token: str | None) -> str:
        """Become the responder and join ``token`` (or the default room).

        Returns:
            The room token actually joined
        """
        self.assign_role(Role.RESPONDER)
        self._room_token = resolve_room_token(token, self._default_room)

        logger.info("Joining room", extra={"room": self._room_token})
        await self._transport.join_room(self._room_token)
        return self._room_token

    def handle_user_joined(self, participant_id: str) -> bool:
        """Record a remote arrival.

        Returns:
            True for the first remote arrival of this call; False for a
            duplicate or an extra participant, which is ignored
        """
        if participant_id == self._transport.participant_id:
            logger.debug("Ignoring own join echo", extra={"participant_id": participant_id})
            return False

        if self._remote_participant_id is not None or self._peer_seen:
            logger.warning(
                "Ignoring additional participant; a peer is already known",
                extra={
                    "participant_id": participant_id,
                    "current_peer": self._remote_participant_id,
                },
            )
            return False

        self._remote_participant_id = participant_id
        self._peer_seen = True
        logger.info("Peer joined", extra={"participant_id": participant_id})
        return True

    def adopt_offer_sender(self, participant_id: str) -> bool:
        """Learn the peer from an inbound offer when no join event was seen.

        Returns:
            True if the sender is (now) the known remote participant
        """
        if self._remote_participant_id is None and not self._peer_seen:
            self._remote_participant_id = participant_id
            self._peer_seen = True
            logger.info("Peer learned from offer", extra={"participant_id": participant_id})
            return True
        return self._remote_participant_id == participant_id

    def handle_user_left(self, participant_id: str | None = None) -> bool:
        """Record a remote departure.

        Returns:
            True if the known remote participant left
        """
        if self._remote_participant_id is None:
            return False
        if participant_id is not None and participant_id != self._remote_participant_id:
            logger.debug(
                "Ignoring departure of unrelated participant",
                extra={"participant_id": participant_id},
            )
            return False

        logger.info("Peer left", extra={"participant_id": self._remote_participant_id})
        self._remote_participant_id = None
        return True
