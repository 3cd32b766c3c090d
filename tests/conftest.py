"""Shared fixtures: in-memory transports that stand in for a serial port."""

from typing import List, Optional, Tuple

import pytest

from vuxprog.errors import TransportTimeout
from vuxprog.protocol.transport import Transport


def identify_response(
    page_words: int = 2,
    flash_pages_exp: int = 1,
    boot_pages: int = 0,
    eeprom_size_exp: Optional[int] = None,
    checksum: Optional[int] = None,
) -> bytes:
    """Build the bytes a VuXboot device sends after 's'."""
    body = b"VuX"
    if eeprom_size_exp is None:
        body += b"f"
    else:
        body += b"e" + bytes([eeprom_size_exp])
    body += bytes([page_words, flash_pages_exp, boot_pages])
    if checksum is None:
        checksum = (-sum(body)) & 0xFF
    return body + bytes([checksum])


class ScriptedTransport(Transport):
    """Replays canned device output and records everything written."""

    def __init__(self, response: bytes = b""):
        self.rx = bytearray(response)
        self.written = bytearray()
        self.writes: List[bytes] = []
        self.closed = False

    def feed(self, data: bytes) -> None:
        self.rx += data

    def read_exact(self, length: int, timeout: Optional[float] = None) -> bytes:
        if len(self.rx) < length:
            raise TransportTimeout(f"read timeout: got {len(self.rx)}/{length} bytes")
        data = bytes(self.rx[:length])
        del self.rx[:length]
        return data

    def write_all(self, data: bytes) -> None:
        self.written += data
        self.writes.append(bytes(data))

    def close(self) -> None:
        self.closed = True


class SimulatedDevice(Transport):
    """
    Minimal VuXboot device behind a Transport interface.

    Commands are decoded as soon as enough bytes were written and the
    replies are queued for read_exact().
    """

    def __init__(
        self,
        page_words: int = 2,
        flash_pages_exp: int = 1,
        boot_pages: int = 0,
        eeprom_size_exp: Optional[int] = None,
        double_ack: bool = False,
        flash: Optional[bytes] = None,
        eeprom: Optional[bytes] = None,
    ):
        self.page_words = page_words
        self.page_bytes = page_words * 2
        self.flash_pages = 1 << flash_pages_exp
        self.boot_pages = boot_pages
        self.eeprom_size_exp = eeprom_size_exp
        self.double_ack = double_ack
        self.ident = identify_response(page_words, flash_pages_exp, boot_pages, eeprom_size_exp)

        size = self.flash_pages * self.page_bytes
        self.flash = bytearray(flash if flash is not None else b"\xff" * size)
        eeprom_size = 0 if eeprom_size_exp is None else 1 << eeprom_size_exp
        self.eeprom = bytearray(eeprom if eeprom is not None else b"\xff" * eeprom_size)

        self.rx = bytearray()
        self.tx = bytearray()
        self._pending_page: Optional[int] = None

        self.flash_writes: List[Tuple[int, bytes]] = []
        self.flash_reads: List[int] = []
        self.eeprom_writes: List[Tuple[int, int]] = []
        self.reset_count = 0
        self.closed = False

        # Fault injection
        self.stuck_pages: set = set()
        self.flash_status = b"."
        self.eeprom_status = b"."
        self.stuck_eeprom: set = set()

    def read_exact(self, length: int, timeout: Optional[float] = None) -> bytes:
        if len(self.tx) < length:
            raise TransportTimeout(f"read timeout: got {len(self.tx)}/{length} bytes")
        data = bytes(self.tx[:length])
        del self.tx[:length]
        return data

    def write_all(self, data: bytes) -> None:
        self.rx += data
        self._process()

    def close(self) -> None:
        self.closed = True

    def _page_slice(self, page: int) -> slice:
        return slice(page * self.page_bytes, (page + 1) * self.page_bytes)

    def _program_page(self, page: int, data: bytes) -> None:
        self.flash_writes.append((page, bytes(data)))
        if page not in self.stuck_pages:
            self.flash[self._page_slice(page)] = data
        self.tx += self.flash_status

    def _process(self) -> None:
        while self.rx:
            if self._pending_page is not None:
                if len(self.rx) < self.page_bytes:
                    return
                data = bytes(self.rx[:self.page_bytes])
                del self.rx[:self.page_bytes]
                page, self._pending_page = self._pending_page, None
                self._program_page(page, data)
                continue

            cmd = self.rx[0:1]
            if cmd == b"s":
                del self.rx[:1]
                self.tx += self.ident
            elif cmd == b"r":
                if len(self.rx) < 3:
                    return
                page = int.from_bytes(self.rx[1:3], "little")
                del self.rx[:3]
                self.flash_reads.append(page)
                self.tx += self.flash[self._page_slice(page)]
            elif cmd == b"w":
                if self.double_ack:
                    if len(self.rx) < 3:
                        return
                    self._pending_page = int.from_bytes(self.rx[1:3], "little")
                    del self.rx[:3]
                    self.tx += b"."
                else:
                    if len(self.rx) < 3 + self.page_bytes:
                        return
                    page = int.from_bytes(self.rx[1:3], "little")
                    data = bytes(self.rx[3:3 + self.page_bytes])
                    del self.rx[:3 + self.page_bytes]
                    self._program_page(page, data)
            elif cmd == b"R":
                del self.rx[:1]
                self.tx += self.eeprom
            elif cmd == b"W":
                if len(self.rx) < 4:
                    return
                address = int.from_bytes(self.rx[1:3], "little")
                value = self.rx[3]
                del self.rx[:4]
                self.eeprom_writes.append((address, value))
                if address not in self.stuck_eeprom:
                    self.eeprom[address] = value
                self.tx += self.eeprom_status
            elif cmd == b"q":
                del self.rx[:1]
                self.reset_count += 1
            else:
                # Bootloader ignores anything it does not understand
                del self.rx[:1]


@pytest.fixture
def two_page_device() -> SimulatedDevice:
    """2 pages of 2 words, no bootloader pages, no EEPROM."""
    return SimulatedDevice(page_words=2, flash_pages_exp=1, boot_pages=0)


@pytest.fixture
def eeprom_device() -> SimulatedDevice:
    """8 pages of 4 words, 2 bootloader pages, 16 bytes of EEPROM."""
    return SimulatedDevice(page_words=4, flash_pages_exp=3, boot_pages=2, eeprom_size_exp=4)
