"""
Loading and saving memory images as Intel-HEX or raw binary files.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Union

from vuxprog import ihex
from vuxprog.errors import StorageError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileFormat(Enum):
    """On-disk image formats."""
    IHEX = "ihex"
    BINARY = "binary"


FILE_FORMAT_ALIASES = {
    "ihex": FileFormat.IHEX,
    "hex": FileFormat.IHEX,
    "intel-hex": FileFormat.IHEX,
    "binary": FileFormat.BINARY,
    "bin": FileFormat.BINARY,
    "raw": FileFormat.BINARY,
}


def parse_file_format(value: Union[str, FileFormat]) -> FileFormat:
    """
    Parse a file format name.

    Accepts "ihex" (also "hex", "intel-hex") and "binary" (also "bin", "raw").

    Raises:
        ValueError: If format is not recognized.
    """
    if isinstance(value, FileFormat):
        return value
    key = (value or "").strip().lower()
    if key not in FILE_FORMAT_ALIASES:
        raise ValueError(
            f"unknown storage format `{value}'. Use 'ihex' or 'binary'."
        )
    return FILE_FORMAT_ALIASES[key]


def load_image(path: PathLike, fmt: Union[str, FileFormat] = FileFormat.IHEX) -> bytes:
    """
    Read a memory image from disk.

    Raises:
        StorageError: File cannot be read
        CodecError: Intel-HEX content is malformed
    """
    fmt = parse_file_format(fmt)
    path = Path(path)

    try:
        if fmt is FileFormat.BINARY:
            data = path.read_bytes()
        else:
            data = bytes(ihex.decode(path.read_text(encoding="ascii")))
    except (OSError, UnicodeDecodeError) as e:
        raise StorageError(f"cannot read from data file {path}: {e}", {"path": str(path)})

    logger.debug(f"Loaded {len(data)} bytes from {path} ({fmt.value})")
    return data


def save_image(path: PathLike, data: bytes, fmt: Union[str, FileFormat] = FileFormat.IHEX) -> None:
    """
    Write a memory image to disk.

    Intel-HEX output is padded with 0xFF to a 16-byte boundary first.

    Raises:
        StorageError: File cannot be written
    """
    fmt = parse_file_format(fmt)
    path = Path(path)

    try:
        if fmt is FileFormat.BINARY:
            path.write_bytes(bytes(data))
        else:
            text = ihex.encode(ihex.pad_image(data, ihex.BLOCK_SIZE))
            path.write_text(text, encoding="ascii")
    except OSError as e:
        raise StorageError(f"cannot write to data file {path}: {e}", {"path": str(path)})

    logger.debug(f"Saved {len(data)} bytes to {path} ({fmt.value})")
