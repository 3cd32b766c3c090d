"""Bootloader protocol layer - serial transport and device session."""

from .transport import (
    Transport,
    SerialTransport,
    open_serial,
)
from .session import (
    DeviceSession,
    DeviceProfile,
    SessionState,
    WriteProtocol,
    HandshakeChecksum,
    open_session,
    parse_write_protocol,
)

__all__ = [
    # Transport
    "Transport",
    "SerialTransport",
    "open_serial",
    # Session
    "DeviceSession",
    "DeviceProfile",
    "SessionState",
    "WriteProtocol",
    "HandshakeChecksum",
    "open_session",
    "parse_write_protocol",
]
