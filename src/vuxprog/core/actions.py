"""
Core workflow actions for VuXprog.

Each action opens the port named in a ProgrammerConfig, starts and
identifies the bootloader, runs one operation, optionally resets the
device, and returns an OperationResult. Programmer errors are reported in
the result rather than raised.
"""

import hashlib
import logging
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from vuxprog.config import ProgrammerConfig
from vuxprog.errors import BootloaderOverwriteError, VuxprogError
from vuxprog.protocol.session import DeviceSession, open_session, parse_write_protocol
from vuxprog.protocol.transport import Transport, open_serial
from . import engine
from .results import OperationResult
from .storage import load_image, save_image, parse_file_format

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
TransportFactory = Callable[[ProgrammerConfig], Transport]
ProgressCallback = Callable[[int, int], None]

BOOTLOADER_OVERWRITE = "bootloader_overwrite"


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records: List[str] = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "vuxprog") -> Iterator[List[str]]:
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def _open_serial(config: ProgrammerConfig) -> Transport:
    return open_serial(config.port, config.baudrate, config.timeout)


@contextmanager
def _device_session(
    config: ProgrammerConfig,
    transport_factory: Optional[TransportFactory] = None,
) -> Iterator[DeviceSession]:
    """Open the port, send the init sequence and identify the device."""
    write_protocol = parse_write_protocol(config.write_protocol)
    transport = (transport_factory or _open_serial)(config)

    with open_session(transport, write_protocol=write_protocol) as session:
        if config.init_sequence:
            logger.info(f"Sending init sequence: {config.init_sequence.hex().upper()}")
            transport.write_all(config.init_sequence)

        session.identify()
        yield session

        if config.reset_after:
            logger.info("Resetting device...")
            session.reset()


def _run(
    operation: str,
    config: ProgrammerConfig,
    body: Callable[[DeviceSession, OperationResult], None],
    transport_factory: Optional[TransportFactory] = None,
) -> OperationResult:
    """Run ``body`` inside an identified session, collecting logs and errors."""
    with _capture_logs() as logs:
        result = OperationResult.success(operation=operation, port=config.port)
        try:
            with _device_session(config, transport_factory) as session:
                profile = session.profile()
                result.metadata["profile"] = dict(asdict(profile), flash_bytes=profile.flash_bytes)
                body(session, result)
        except VuxprogError as e:
            logger.error(f"{operation} failed: {e.diagnostic()}")
            failed = OperationResult.from_error(operation, e, port=config.port)
            if isinstance(e, BootloaderOverwriteError):
                failed.metadata["refused"] = BOOTLOADER_OVERWRITE
            if "profile" in result.metadata:
                failed.metadata["profile"] = result.metadata["profile"]
            failed.warnings = result.warnings
            result = failed
        except ValueError as e:
            logger.error(f"{operation} failed: {e}")
            result = OperationResult.failure(operation, str(e), port=config.port, error_kind="input")
        result.logs = logs
        return result


def identify_device(
    config: ProgrammerConfig,
    transport_factory: Optional[TransportFactory] = None,
) -> OperationResult:
    """
    Identify the device and report its geometry.

    Returns:
        OperationResult with metadata["profile"] set to the DeviceProfile
    """
    def body(session: DeviceSession, result: OperationResult) -> None:
        result.region = _flash_region(session, True)

    return _run("identify", config, body, transport_factory)


def _flash_region(session: DeviceSession, include_bootloader: bool) -> str:
    profile = session.profile()
    last = profile.flash_pages if include_bootloader else profile.app_pages
    return f"pages 0-{last - 1}" if last else "none"


def flash_read(
    config: ProgrammerConfig,
    output_path: PathLike,
    progress_cb: Optional[ProgressCallback] = None,
    transport_factory: Optional[TransportFactory] = None,
) -> OperationResult:
    """
    Dump flash to ``output_path``.

    Only application pages are read unless config.include_bootloader is set.
    """
    def body(session: DeviceSession, result: OperationResult) -> None:
        fmt = parse_file_format(config.file_format)
        data = engine.read_flash(session, config.include_bootloader, progress_cb)
        save_image(output_path, data, fmt)

        result.region = _flash_region(session, config.include_bootloader)
        result.bytes_len = len(data)
        result.hashes["sha256"] = hashlib.sha256(data).hexdigest()
        result.metadata["output"] = str(output_path)

    return _run("flash_read", config, body, transport_factory)


def flash_write(
    config: ProgrammerConfig,
    input_path: PathLike,
    progress_cb: Optional[ProgressCallback] = None,
    transport_factory: Optional[TransportFactory] = None,
) -> OperationResult:
    """
    Program flash from ``input_path`` with diff-and-apply.

    The file is parsed before the port is opened. Writing into the
    bootloader pages needs config.force.
    """
    try:
        image = load_image(input_path, config.file_format)
    except (VuxprogError, ValueError) as e:
        return _input_failure("flash_write", config, e)

    def body(session: DeviceSession, result: OperationResult) -> None:
        profile = session.profile()
        pages = -(-len(image) // profile.page_bytes)
        if pages > profile.app_pages and config.force:
            result.add_warning(
                f"Image is {pages} pages long and overwrites bootloader pages "
                f"{profile.app_pages}-{profile.flash_pages - 1}"
            )

        changed = engine.program_flash(session, image, config.force, progress_cb)

        result.region = f"pages 0-{pages - 1}" if pages else "none"
        result.bytes_len = len(image)
        result.changed = changed
        result.hashes["sha256"] = hashlib.sha256(image).hexdigest()

    return _run("flash_write", config, body, transport_factory)


def eeprom_read(
    config: ProgrammerConfig,
    output_path: PathLike,
    transport_factory: Optional[TransportFactory] = None,
) -> OperationResult:
    """Dump EEPROM to ``output_path``."""
    def body(session: DeviceSession, result: OperationResult) -> None:
        fmt = parse_file_format(config.file_format)
        data = engine.read_eeprom(session)
        save_image(output_path, data, fmt)

        result.region = f"eeprom 0x0000-0x{len(data) - 1:04X}"
        result.bytes_len = len(data)
        result.hashes["sha256"] = hashlib.sha256(data).hexdigest()
        result.metadata["output"] = str(output_path)

    return _run("eeprom_read", config, body, transport_factory)


def eeprom_write(
    config: ProgrammerConfig,
    input_path: PathLike,
    progress_cb: Optional[ProgressCallback] = None,
    transport_factory: Optional[TransportFactory] = None,
) -> OperationResult:
    """Program EEPROM from ``input_path``, writing only changed bytes."""
    try:
        image = load_image(input_path, config.file_format)
    except (VuxprogError, ValueError) as e:
        return _input_failure("eeprom_write", config, e)

    def body(session: DeviceSession, result: OperationResult) -> None:
        changed = engine.program_eeprom(session, image, progress_cb)

        result.region = f"eeprom 0x0000-0x{session.profile().eeprom_bytes - 1:04X}"
        result.bytes_len = len(image)
        result.changed = changed
        result.hashes["sha256"] = hashlib.sha256(image).hexdigest()

    return _run("eeprom_write", config, body, transport_factory)


def reset_device(
    config: ProgrammerConfig,
    transport_factory: Optional[TransportFactory] = None,
) -> OperationResult:
    """Identify the device, then leave the bootloader."""
    def body(session: DeviceSession, result: OperationResult) -> None:
        if not config.reset_after:
            logger.info("Resetting device...")
            session.reset()

    return _run("reset", config, body, transport_factory)


def _input_failure(operation: str, config: ProgrammerConfig, exc: Exception) -> OperationResult:
    logger.error(f"{operation} failed: {exc}")
    if isinstance(exc, VuxprogError):
        return OperationResult.from_error(operation, exc, port=config.port)
    return OperationResult.failure(operation, str(exc), port=config.port, error_kind="input")
