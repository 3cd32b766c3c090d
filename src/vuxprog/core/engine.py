"""
Diff-and-apply programming for flash and EEPROM.

Only pages (flash) or bytes (EEPROM) that differ from the current device
content are written, and every write is verified by reading it back. A
verification failure stops programming immediately; the device is then left
partially programmed and nothing is retried.
"""

import logging
from typing import Callable, Optional

from vuxprog.errors import (
    BootloaderOverwriteError,
    RangeError,
    VerificationError,
)
from vuxprog.ihex import ERASED, Image, pad_image
from vuxprog.protocol.session import DeviceSession

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def read_flash(
    session: DeviceSession,
    include_bootloader: bool = False,
    progress_cb: Optional[ProgressCallback] = None,
) -> bytes:
    """
    Dump flash contents.

    Args:
        session: Identified device session
        include_bootloader: Also dump the reserved bootloader pages
        progress_cb: Optional callback(pages_read, total_pages)

    Returns:
        Concatenated page contents
    """
    profile = session.profile()
    last_page = profile.flash_pages if include_bootloader else profile.app_pages

    logger.info(f"Reading flash pages 0-{last_page - 1}")
    flash = bytearray()
    for page in range(last_page):
        flash += session.read_flash_page(page)
        if progress_cb:
            progress_cb(page + 1, last_page)
    return bytes(flash)


def program_flash(
    session: DeviceSession,
    image: Image,
    allow_boot_overwrite: bool = False,
    progress_cb: Optional[ProgressCallback] = None,
) -> int:
    """
    Write a flash image, touching only pages that changed.

    Args:
        session: Identified device session
        image: New flash contents starting at address 0
        allow_boot_overwrite: Permit images that reach the bootloader pages
        progress_cb: Optional callback(pages_done, total_pages)

    Returns:
        Number of pages written

    Raises:
        BootloaderOverwriteError: Image covers bootloader pages without override
        RangeError: Image is larger than the whole flash
        VerificationError: A written page did not read back identically
    """
    profile = session.profile()
    page_bytes = profile.page_bytes
    flash = pad_image(image, page_bytes)
    total_pages = len(flash) // page_bytes

    if total_pages > profile.flash_pages:
        raise RangeError(
            f"image is {total_pages} pages long; device flash has "
            f"{profile.flash_pages} pages",
            {"operation": "write flash", "expected": profile.flash_pages, "received": total_pages},
        )

    if total_pages > profile.app_pages:
        if not allow_boot_overwrite:
            raise BootloaderOverwriteError(
                f"image is {total_pages} pages long; writing it will overwrite "
                f"the bootloader at pages {profile.app_pages}-{profile.flash_pages - 1}",
                {"operation": "write flash", "expected": profile.app_pages, "received": total_pages},
            )
        logger.warning(
            f"Image reaches bootloader pages {profile.app_pages}-"
            f"{profile.flash_pages - 1}; writing anyway"
        )

    erased_page = bytes([ERASED]) * page_bytes
    changed = 0

    for page in range(total_pages):
        new_page = bytes(flash[page * page_bytes:(page + 1) * page_bytes])

        if new_page != erased_page:
            old_page = session.read_flash_page(page)
            if old_page != new_page:
                session.write_flash_page(page, new_page)
                changed += 1

                if session.read_flash_page(page) != new_page:
                    raise VerificationError(
                        f"flash verification failed at page {page}",
                        {"operation": "write flash", "page": page},
                    )

        if progress_cb:
            progress_cb(page + 1, total_pages)

    logger.info(f"Flash programmed: {changed} pages changed")
    return changed


def read_eeprom(session: DeviceSession) -> bytes:
    """Dump the whole EEPROM."""
    return session.read_eeprom()


def program_eeprom(
    session: DeviceSession,
    image: Image,
    progress_cb: Optional[ProgressCallback] = None,
) -> int:
    """
    Write an EEPROM image, touching only bytes that changed.

    Args:
        session: Identified device session
        image: New EEPROM contents starting at address 0
        progress_cb: Optional callback(bytes_done, total_bytes)

    Returns:
        Number of bytes written

    Raises:
        FeatureError: Device has no EEPROM
        RangeError: Image is larger than the EEPROM
        VerificationError: Read-back differs from the new image
    """
    old_eeprom = session.read_eeprom()

    if len(image) > len(old_eeprom):
        raise RangeError(
            f"eeprom image is too big: {len(image)} bytes, device has {len(old_eeprom)}",
            {"operation": "write eeprom", "expected": len(old_eeprom), "received": len(image)},
        )

    new_eeprom = bytes(image) + bytes([ERASED]) * (len(old_eeprom) - len(image))

    changed = 0
    for address, (old, new) in enumerate(zip(old_eeprom, new_eeprom)):
        if old != new:
            session.write_eeprom(address, new)
            changed += 1
        if progress_cb:
            progress_cb(address + 1, len(new_eeprom))

    readback = session.read_eeprom()
    if readback != new_eeprom:
        address = next(
            (i for i, (got, want) in enumerate(zip(readback, new_eeprom)) if got != want),
            min(len(readback), len(new_eeprom)),
        )
        raise VerificationError(
            f"eeprom verification failed at address 0x{address:04X}",
            {"operation": "write eeprom", "address": address},
        )

    logger.info(f"EEPROM programmed: {changed} bytes changed")
    return changed
