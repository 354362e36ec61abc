"""Error kinds raised and handled by the call core.

User-visible kinds carry a ``user_message`` the UI layer can show as-is.
``ProtocolViolation`` is internal only: it is logged and the offending
message is dropped.
"""


class CallError(Exception):
    """Base class for call errors."""

    user_message: str = ""


class MediaAcquisitionError(CallError):
    """Local audio input could not be acquired."""


class MediaPermissionDenied(MediaAcquisitionError):
    """User declined microphone access."""

    user_message = "Microphone access is required to start a call."


class DeviceUnavailable(MediaAcquisitionError):
    """No usable audio input device."""

    user_message = "No microphone is available."


class TransportUnavailable(CallError):
    """Signaling relay unreachable or connection dropped."""

    user_message = "Could not reach the signaling server."


class PeerDeparted(CallError):
    """Remote participant left the room."""

    user_message = "Your friend has left the call."


class ConnectivityLost(CallError):
    """Negotiated media path failed, disconnected or closed."""

    user_message = "Connection lost."


class ProtocolViolation(CallError):
    """Out-of-order, duplicate or malformed signaling message."""


class PrecursorMissing(CallError):
    """Operation requires a step that has not happened yet (or is too late)."""


class NoPeerAddressed(CallError):
    """No remote participant is known to address a message to."""


class RoleAlreadyAssigned(CallError):
    """Role is immutable for the duration of a call."""


class CallInProgress(CallError):
    """A create/join was requested while a call attempt is still active."""
