"""
VuXprog - host-side programmer for the VuXboot AVR serial bootloader

Reads and writes flash and EEPROM over a serial port, writing only what
changed and verifying every write.
"""

__version__ = "0.1.0"

from vuxprog.protocol import (
    SerialTransport,
    DeviceSession,
    DeviceProfile,
    WriteProtocol,
    open_session,
)
from vuxprog.core.engine import program_flash, program_eeprom, read_flash, read_eeprom
from vuxprog import ihex

__all__ = [
    "SerialTransport",
    "DeviceSession",
    "DeviceProfile",
    "WriteProtocol",
    "open_session",
    "program_flash",
    "program_eeprom",
    "read_flash",
    "read_eeprom",
    "ihex",
    "__version__",
]
