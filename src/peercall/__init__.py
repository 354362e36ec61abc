"""Two-party peer-to-peer audio calls over a signaling relay."""

from peercall.call import CallController
from peercall.config import CallConfig
from peercall.room import Role
from peercall.state_machine import CallPhase

__all__ = ["CallController", "CallConfig", "CallPhase", "Role"]

__version__ = "0.1.0"
