"""
Centralized parsing helpers for option values.

The CLI must import these helpers rather than re-implement them.
"""

import codecs
from typing import Optional

from vuxprog.core.storage import FileFormat, parse_file_format, FILE_FORMAT_ALIASES
from vuxprog.protocol.session import WriteProtocol, parse_write_protocol

__all__ = [
    "parse_init_sequence",
    "parse_file_format",
    "parse_write_protocol",
    "get_valid_file_formats",
    "FileFormat",
    "WriteProtocol",
]


def parse_init_sequence(value: Optional[str]) -> Optional[bytes]:
    """
    Parse the bootloader entry sequence.

    Accepts:
        - Plain text, with backslash escapes: "boot\\r\\n"
        - Hex with 0x prefix: "0x1B1B" -> b"\\x1b\\x1b"
        - None or empty for no sequence

    Returns:
        Bytes to send before identify, or None.

    Raises:
        ValueError: If value cannot be parsed.
    """
    if value is None or value == "":
        return None

    if value.lower().startswith("0x"):
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            raise ValueError(
                f"Invalid init sequence '{value}'. Hex form needs an even number of digits."
            )

    try:
        return codecs.decode(value, "unicode_escape").encode("latin-1")
    except (UnicodeDecodeError, UnicodeEncodeError):
        raise ValueError(
            f"Invalid init sequence '{value}'. Use text with escapes or 0x-prefixed hex."
        )


def get_valid_file_formats() -> list:
    """Get list of valid file format strings."""
    return sorted(FILE_FORMAT_ALIASES.keys())
