"""
Intel-HEX codec for VuXprog memory images.

Images are plain byte buffers addressed from 0. Regions never written by a
record read as 0xFF (erased flash).

Supported record types:
    00  data
    01  end of file
    03  origin: 4-byte big-endian address, everything below it is erased
"""

import re
import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from vuxprog.errors import CodecError, CodecErrorKind

REC_DATA = 0x00
REC_EOF = 0x01
REC_ORIGIN = 0x03

ERASED = 0xFF
BLOCK_SIZE = 16
EOF_LINE = ":00000001FF"
MAX_IMAGE_SIZE = 0x10000

_HEX_DIGITS = re.compile(r"[0-9A-Fa-f]+")

Image = Union[bytes, bytearray]


def record_checksum(data: bytes) -> int:
    """Two's complement of the 8-bit sum of ``data``."""
    return (-sum(data)) & 0xFF


@dataclass(frozen=True)
class HexRecord:
    """
    One Intel-HEX line.

    The 8-bit sum of length, both address bytes, type, payload and checksum
    is zero.
    """
    length: int
    address: int
    type: int
    payload: bytes
    checksum: int

    @classmethod
    def build(cls, address: int, rtype: int, payload: bytes) -> "HexRecord":
        header = struct.pack(">BHB", len(payload), address, rtype)
        return cls(
            length=len(payload),
            address=address,
            type=rtype,
            payload=bytes(payload),
            checksum=record_checksum(header + payload),
        )

    def to_bytes(self) -> bytes:
        header = struct.pack(">BHB", self.length, self.address, self.type)
        return header + self.payload + bytes([self.checksum])

    def to_line(self) -> str:
        return ":" + self.to_bytes().hex().upper()


def parse_record(line: str, lineno: Optional[int] = None) -> HexRecord:
    """
    Parse one Intel-HEX line.

    Raises:
        CodecError: FORMAT for malformed lines, BAD_CHECKSUM when the record
            does not sum to zero.
    """
    if line.endswith("\r"):
        line = line[:-1]

    if not line.startswith(":") or len(line) < 11 or len(line) % 2 != 1:
        raise CodecError(CodecErrorKind.FORMAT, repr(line), lineno)

    # bytes.fromhex() skips whitespace, so check the digits first
    if not _HEX_DIGITS.fullmatch(line, 1):
        raise CodecError(CodecErrorKind.FORMAT, f"not hexadecimal: {line!r}", lineno)
    raw = bytes.fromhex(line[1:])

    if len(raw) != raw[0] + 5:
        raise CodecError(
            CodecErrorKind.FORMAT,
            f"payload size {raw[0]} does not match record length {len(raw)}",
            lineno,
        )

    if sum(raw) & 0xFF != 0:
        raise CodecError(CodecErrorKind.BAD_CHECKSUM, line, lineno)

    length, address, rtype = struct.unpack(">BHB", raw[:4])
    return HexRecord(
        length=length,
        address=address,
        type=rtype,
        payload=raw[4:-1],
        checksum=raw[-1],
    )


def _grow(image: bytearray, size: int) -> None:
    """Extend ``image`` to ``size`` bytes, filling the new tail with 0xFF."""
    if len(image) < size:
        image.extend(bytes([ERASED]) * (size - len(image)))


def _lines(text: str) -> Iterator[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return iter(lines)


def decode(text: str) -> bytearray:
    """
    Decode Intel-HEX text into a memory image.

    Raises:
        CodecError: On any malformed record, unknown record type, or a
            missing end-of-file record (TRUNCATED).
    """
    image = bytearray()

    for lineno, line in enumerate(_lines(text), start=1):
        record = parse_record(line, lineno)

        if record.type == REC_DATA:
            end = record.address + record.length
            _grow(image, end)
            image[record.address:end] = record.payload
        elif record.type == REC_EOF:
            return image
        elif record.type == REC_ORIGIN:
            if record.length != 4:
                raise CodecError(CodecErrorKind.FORMAT, "invalid .org", lineno)
            (origin,) = struct.unpack(">I", record.payload)
            if origin > MAX_IMAGE_SIZE:
                raise CodecError(
                    CodecErrorKind.FORMAT, f"invalid .org 0x{origin:08X}", lineno
                )
            _grow(image, origin)
            image[:origin] = bytes([ERASED]) * origin
        else:
            raise CodecError(
                CodecErrorKind.UNKNOWN_TYPE, f"record type {record.type:02X}", lineno
            )

    raise CodecError(CodecErrorKind.TRUNCATED)


def pad_image(image: Image, multiple: int, fill: int = ERASED) -> bytearray:
    """Return a copy of ``image`` padded with ``fill`` to a multiple of ``multiple``."""
    padded = bytearray(image)
    remainder = len(padded) % multiple
    if remainder:
        padded.extend(bytes([fill]) * (multiple - remainder))
    return padded


def encode(image: Image) -> str:
    """
    Encode a memory image as Intel-HEX text.

    The image length must be a multiple of 16 bytes; pad with pad_image()
    first. Blocks that are entirely 0xFF are omitted.

    Raises:
        CodecError: If the image is not 16-byte aligned
    """
    if len(image) % BLOCK_SIZE:
        raise CodecError(
            CodecErrorKind.FORMAT,
            f"image length {len(image)} is not a multiple of {BLOCK_SIZE}",
        )
    if len(image) > MAX_IMAGE_SIZE:
        raise CodecError(
            CodecErrorKind.FORMAT,
            f"image length {len(image)} exceeds 16-bit addressing",
        )

    erased = bytes([ERASED]) * BLOCK_SIZE
    lines = []
    for address in range(0, len(image), BLOCK_SIZE):
        block = bytes(image[address:address + BLOCK_SIZE])
        if block == erased:
            continue
        lines.append(HexRecord.build(address, REC_DATA, block).to_line())

    lines.append(EOF_LINE)
    return "\n".join(lines) + "\n"
