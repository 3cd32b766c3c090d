"""
VuXboot device session.

Implements the bootloader command/response protocol on top of a Transport:

    identify          's'                 -> "VuX" type [eesize] geometry(3) checksum
    read flash page   'r' page(2)         -> page_words * 2 bytes
    write flash page  'w' page(2) [data]  -> status ('.' = ok), one or two acks
    read eeprom       'R'                 -> eeprom_bytes bytes
    write eeprom byte 'W' addr(2) byte    -> status
    reset             'q'                 -> (nothing)

All multi-byte integers on the wire are little-endian. Exactly one request
is outstanding at a time and nothing is retried.
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from vuxprog.errors import (
    FeatureError,
    HardwareError,
    ProtocolError,
    RangeError,
    SessionStateError,
)
from .transport import Transport

logger = logging.getLogger(__name__)

SIGNATURE = b"VuX"
TYPE_FLASH_ONLY = b"f"
TYPE_FLASH_EEPROM = b"e"
STATUS_OK = b"."

# Page numbers and EEPROM addresses travel as 16-bit words
MAX_PAGES = 0x10000
MAX_EEPROM_BYTES = 0x10000

CMD_IDENTIFY = b"s"
CMD_READ_FLASH = b"r"
CMD_WRITE_FLASH = b"w"
CMD_READ_EEPROM = b"R"
CMD_WRITE_EEPROM = b"W"
CMD_RESET = b"q"


class SessionState(Enum):
    """Lifecycle of a DeviceSession."""
    UNIDENTIFIED = "unidentified"
    IDENTIFIED = "identified"
    CLOSED = "closed"


class WriteProtocol(Enum):
    """
    Flash page write handshake.

    Two firmware revisions exist in the field:
        SINGLE_ACK: 'w' page data            -> status
        DOUBLE_ACK: 'w' page -> ack, data    -> status
    """
    SINGLE_ACK = "single"
    DOUBLE_ACK = "double"


class HandshakeChecksum(Enum):
    """
    How the identify checksum byte is validated.

    TWOS_COMPLEMENT: sum of received bytes plus checksum is 0 mod 256.
    RAW_SUM: checksum equals the plain 8-bit sum (legacy host behaviour).
    """
    TWOS_COMPLEMENT = "twos-complement"
    RAW_SUM = "raw-sum"


def parse_write_protocol(value: str) -> WriteProtocol:
    """Parse "single"/"a" or "double"/"b" into a WriteProtocol."""
    aliases = {
        "single": WriteProtocol.SINGLE_ACK,
        "single_ack": WriteProtocol.SINGLE_ACK,
        "a": WriteProtocol.SINGLE_ACK,
        "double": WriteProtocol.DOUBLE_ACK,
        "double_ack": WriteProtocol.DOUBLE_ACK,
        "b": WriteProtocol.DOUBLE_ACK,
    }
    key = (value or "").strip().lower().replace("-", "_")
    if key not in aliases:
        raise ValueError(
            f"Unknown write protocol '{value}'. Use 'single' or 'double'."
        )
    return aliases[key]


@dataclass(frozen=True)
class DeviceProfile:
    """
    Memory geometry reported by the bootloader.

    Attributes:
        has_eeprom: Device has EEPROM accessible through the bootloader
        eeprom_bytes: EEPROM size in bytes (0 without EEPROM)
        page_words: Flash page size in 16-bit words
        flash_pages: Total flash size in pages
        boot_pages: Pages reserved for the bootloader at the end of flash
    """
    has_eeprom: bool
    eeprom_bytes: int
    page_words: int
    flash_pages: int
    boot_pages: int

    @property
    def page_bytes(self) -> int:
        return self.page_words * 2

    @property
    def app_pages(self) -> int:
        """Pages below the bootloader region."""
        return self.flash_pages - self.boot_pages

    @property
    def flash_bytes(self) -> int:
        return self.flash_pages * self.page_bytes


def _expected_checksum(received: bytes, mode: HandshakeChecksum) -> int:
    total = sum(received) & 0xFF
    if mode is HandshakeChecksum.RAW_SUM:
        return total
    return (-total) & 0xFF


def handshake_checksum_ok(
    received: bytes,
    checksum: int,
    mode: HandshakeChecksum = HandshakeChecksum.TWOS_COMPLEMENT,
) -> bool:
    return checksum == _expected_checksum(received, mode)


class DeviceSession:
    """
    Protocol session with one VuXboot device.

    The session owns its transport for its whole lifetime. Call identify()
    first; every other operation except reset() requires an identified
    device.

    Example:
        with DeviceSession(transport) as session:
            profile = session.identify()
            page0 = session.read_flash_page(0)
    """

    def __init__(
        self,
        transport: Transport,
        write_protocol: WriteProtocol = WriteProtocol.SINGLE_ACK,
        checksum_mode: HandshakeChecksum = HandshakeChecksum.TWOS_COMPLEMENT,
    ):
        self.transport = transport
        self.write_protocol = write_protocol
        self.checksum_mode = checksum_mode
        self.state = SessionState.UNIDENTIFIED
        self._profile: Optional[DeviceProfile] = None

    def __enter__(self) -> "DeviceSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _require_open(self, operation: str) -> None:
        if self.state is SessionState.CLOSED:
            raise SessionStateError(
                f"{operation}: session is closed", {"operation": operation}
            )

    def _require_identified(self, operation: str) -> DeviceProfile:
        self._require_open(operation)
        if self.state is not SessionState.IDENTIFIED or self._profile is None:
            raise SessionStateError(
                f"{operation}: device not identified", {"operation": operation}
            )
        return self._profile

    def profile(self) -> DeviceProfile:
        """Return the geometry reported by identify()."""
        return self._require_identified("profile")

    def _read_status(self, operation: str, **details) -> None:
        status = self.transport.read_exact(1)
        if status != STATUS_OK:
            details.update({"operation": operation, "expected": STATUS_OK, "received": status})
            raise HardwareError(f"cannot {operation} (status {status!r})", details)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def identify(self) -> DeviceProfile:
        """
        Perform the identify handshake and record the device geometry.

        Returns:
            DeviceProfile reported by the device

        Raises:
            ProtocolError: Wrong signature, device type, geometry or checksum.
                The session stays UNIDENTIFIED.
            TransportError: Channel failure or timeout
        """
        self._require_open("identify")
        self.state = SessionState.UNIDENTIFIED
        self._profile = None
        self.transport.write_all(CMD_IDENTIFY)

        signature = self.transport.read_exact(3)
        if signature != SIGNATURE:
            raise ProtocolError("wrong signature", signature, expected=SIGNATURE)

        s_type = self.transport.read_exact(1)
        if s_type not in (TYPE_FLASH_ONLY, TYPE_FLASH_EEPROM):
            raise ProtocolError("wrong type", s_type)

        has_eeprom = s_type == TYPE_FLASH_EEPROM
        eeprom_bytes = 0
        if has_eeprom:
            s_eesize = self.transport.read_exact(1)
            eeprom_bytes = 1 << s_eesize[0]
            s_type += s_eesize

        s_flash_sizes = self.transport.read_exact(3)
        page_words, flash_pages_exp, boot_pages = s_flash_sizes
        checksum = self.transport.read_exact(1)[0]

        received = signature + s_type + s_flash_sizes
        if not handshake_checksum_ok(received, checksum, self.checksum_mode):
            raise ProtocolError(
                "bad checksum",
                expected=_expected_checksum(received, self.checksum_mode),
                received=checksum,
            )

        flash_pages = 1 << flash_pages_exp
        if (
            page_words == 0
            or boot_pages > flash_pages
            or flash_pages > MAX_PAGES
            or eeprom_bytes > MAX_EEPROM_BYTES
        ):
            raise ProtocolError(
                f"bad geometry: {page_words} words/page, "
                f"{flash_pages} pages, {boot_pages} boot pages, eeprom {eeprom_bytes} bytes"
            )

        self._profile = DeviceProfile(
            has_eeprom=has_eeprom,
            eeprom_bytes=eeprom_bytes,
            page_words=page_words,
            flash_pages=flash_pages,
            boot_pages=boot_pages,
        )
        self.state = SessionState.IDENTIFIED
        logger.info(
            f"Identified device: {flash_pages} pages x {page_words} words, "
            f"{boot_pages} boot pages, eeprom {eeprom_bytes} bytes"
        )
        return self._profile

    def read_flash_page(self, page: int) -> bytes:
        """
        Read one flash page.

        Raises:
            RangeError: If page is outside flash
        """
        profile = self._require_identified("read flash")
        if not 0 <= page < profile.flash_pages:
            raise RangeError(
                f"flash page address too big: {page} (device has {profile.flash_pages})",
                {"operation": "read flash", "page": page},
            )

        self.transport.write_all(CMD_READ_FLASH + struct.pack("<H", page))
        return self.transport.read_exact(profile.page_bytes)

    def write_flash_page(self, page: int, data: bytes) -> None:
        """
        Write one flash page using the configured WriteProtocol.

        Raises:
            RangeError: If page is outside flash or data is not one page long
            HardwareError: If the device reports a failed write
        """
        profile = self._require_identified("write flash")
        if len(data) != profile.page_bytes:
            raise RangeError(
                f"flash page size mismatch: {len(data)} bytes, "
                f"expected {profile.page_bytes}",
                {"operation": "write flash", "page": page},
            )
        if not 0 <= page < profile.flash_pages:
            raise RangeError(
                f"flash page address too big: {page} (device has {profile.flash_pages})",
                {"operation": "write flash", "page": page},
            )

        request = CMD_WRITE_FLASH + struct.pack("<H", page)
        if self.write_protocol is WriteProtocol.DOUBLE_ACK:
            self.transport.write_all(request)
            self._read_status("start flash write", page=page)
            self.transport.write_all(bytes(data))
        else:
            self.transport.write_all(request + bytes(data))
        self._read_status("write flash", page=page)
        logger.debug(f"Wrote flash page {page}")

    def read_flash(self, last_page: Optional[int] = None) -> bytes:
        """Read pages ``0 .. last_page - 1`` (whole flash by default)."""
        profile = self._require_identified("read flash")
        if last_page is None:
            last_page = profile.flash_pages
        return b"".join(self.read_flash_page(page) for page in range(last_page))

    def read_eeprom(self) -> bytes:
        """
        Read the whole EEPROM.

        Raises:
            FeatureError: If the device has no EEPROM
        """
        profile = self._require_identified("read eeprom")
        if not profile.has_eeprom:
            raise FeatureError("no eeprom", {"operation": "read eeprom"})

        self.transport.write_all(CMD_READ_EEPROM)
        return self.transport.read_exact(profile.eeprom_bytes)

    def write_eeprom(self, address: int, value: int) -> None:
        """
        Write one EEPROM byte.

        Raises:
            FeatureError: If the device has no EEPROM
            RangeError: If address or value is out of range
            HardwareError: If the device reports a failed write
        """
        profile = self._require_identified("write eeprom")
        if not profile.has_eeprom:
            raise FeatureError("no eeprom", {"operation": "write eeprom"})
        if not 0 <= address < profile.eeprom_bytes:
            raise RangeError(
                f"eeprom address too big: {address} (device has {profile.eeprom_bytes})",
                {"operation": "write eeprom", "address": address},
            )
        if not 0 <= value <= 0xFF:
            raise RangeError(
                f"eeprom value out of range: {value}",
                {"operation": "write eeprom", "address": address},
            )

        self.transport.write_all(CMD_WRITE_EEPROM + struct.pack("<HB", address, value))
        self._read_status("write eeprom", address=address)

    def reset(self) -> None:
        """Ask the bootloader to start the application. No response is sent."""
        self._require_open("reset")
        self.transport.write_all(CMD_RESET)
        logger.info("Reset command sent")

    def close(self) -> None:
        """Release the transport. Safe to call more than once."""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.transport.close()


def open_session(
    transport: Transport,
    write_protocol: WriteProtocol = WriteProtocol.SINGLE_ACK,
    checksum_mode: HandshakeChecksum = HandshakeChecksum.TWOS_COMPLEMENT,
) -> DeviceSession:
    """Create an unidentified session that owns ``transport``."""
    return DeviceSession(transport, write_protocol=write_protocol, checksum_mode=checksum_mode)
