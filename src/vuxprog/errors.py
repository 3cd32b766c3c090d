"""
Error types for VuXprog.

Every error raised by the programmer derives from VuxprogError and carries
an ErrorKind tag, so callers can branch on ``err.kind`` instead of on the
concrete class. ``details`` holds the operation context (page, address,
expected and received values) used for one-line diagnostics.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Broad error categories reported to the user."""
    IO = "i/o"
    PROTOCOL = "protocol"
    HARDWARE = "hardware"
    FEATURE = "feature"
    CODEC = "codec"
    VERIFY = "verification"
    INPUT = "input"


class VuxprogError(Exception):
    """
    Base exception for all programmer errors.

    Attributes:
        message: Human-readable description
        details: Additional context (operation, page, address, ...)
    """
    kind = ErrorKind.IO

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def diagnostic(self) -> str:
        """One-line diagnostic, e.g. ``hardware error: cannot write flash``."""
        return f"{self.kind.value} error: {self.message}"


class TransportError(VuxprogError):
    """Serial channel failure (open, read, write)"""
    kind = ErrorKind.IO


class TransportTimeout(TransportError):
    """Device did not send the expected bytes before the deadline"""
    pass


class ProtocolError(VuxprogError):
    """Handshake or framing does not match the bootloader contract"""
    kind = ErrorKind.PROTOCOL

    def __init__(self, info: str, received: Any = None, **details):
        message = info
        if isinstance(received, bytes):
            message += f": `{received.decode('latin-1')}'"
        elif received is not None:
            message += f": got 0x{received:02X}"
            if "expected" in details:
                message += f", expected 0x{details['expected']:02X}"
        if received is not None:
            details["received"] = received
        super().__init__(message, details)


class HardwareError(VuxprogError):
    """Device reported a failed write"""
    kind = ErrorKind.HARDWARE


class FeatureError(VuxprogError):
    """Operation not supported by the device or not allowed right now"""
    kind = ErrorKind.FEATURE


class RangeError(FeatureError):
    """Page, address or image size outside the device geometry"""
    pass


class SessionStateError(FeatureError):
    """Operation requested in the wrong session state"""
    pass


class BootloaderOverwriteError(FeatureError):
    """Flash image reaches into the reserved bootloader pages"""
    pass


class CodecErrorKind(Enum):
    """Reasons an Intel-HEX input is rejected."""
    FORMAT = "format"
    BAD_CHECKSUM = "checksum"
    UNKNOWN_TYPE = "type"
    TRUNCATED = "unterminated file"


class CodecError(VuxprogError):
    """Malformed Intel-HEX data"""
    kind = ErrorKind.CODEC

    def __init__(
        self,
        reason: CodecErrorKind,
        message: str = "",
        line: Optional[int] = None,
    ):
        self.reason = reason
        text = f"invalid ihex data ({reason.value})"
        if message:
            text += f": {message}"
        if line is not None:
            text += f" at line {line}"
        super().__init__(text, {"reason": reason.value, "line": line})


class VerificationError(VuxprogError):
    """Read-back after a write does not match the written data"""
    kind = ErrorKind.VERIFY


class StorageError(VuxprogError):
    """Data file cannot be read or written"""
    kind = ErrorKind.INPUT
