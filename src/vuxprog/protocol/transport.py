"""
VuXboot Serial Transport Layer

Handles low-level serial communication with the VuXboot bootloader.

This module provides:
- The Transport contract used by the device session
- Serial port initialization and configuration
- Deadline-bounded exact reads and all-or-nothing writes
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

try:
    import serial
except ImportError:
    raise ImportError("PySerial required: pip install pyserial")

from vuxprog.config import DEFAULT_BAUDRATE, DEFAULT_TIMEOUT
from vuxprog.errors import TransportError, TransportTimeout

logger = logging.getLogger(__name__)


class Transport(ABC):
    """
    Blocking byte channel used by DeviceSession.

    ``read_exact`` blocks until exactly ``length`` bytes arrived or the
    deadline elapsed. The deadline restarts on every call.
    """

    timeout: float = DEFAULT_TIMEOUT

    @abstractmethod
    def read_exact(self, length: int, timeout: Optional[float] = None) -> bytes:
        """Read exactly ``length`` bytes or raise TransportTimeout."""

    @abstractmethod
    def write_all(self, data: bytes) -> None:
        """Write every byte of ``data`` or raise TransportError."""

    def close(self) -> None:
        """Release the channel."""

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SerialTransport(Transport):
    """
    Serial port transport for VuXboot devices.

    Handles:
    - Serial port management
    - Exact reads bounded by a per-call deadline
    - Rejection of short writes (no partial-write retry)

    Example:
        transport = SerialTransport(port="/dev/ttyUSB0")
        transport.open()
        transport.write_all(b"s")
        signature = transport.read_exact(3)
        transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize transport layer.

        Args:
            port: Serial port (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Serial baud rate (default 9600)
            timeout: Per-read deadline in seconds (default 5.0)
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.ser: Optional[serial.Serial] = None

    @property
    def is_open(self) -> bool:
        return bool(self.ser and self.ser.is_open)

    def open(self) -> "SerialTransport":
        """
        Open serial port and configure it for the bootloader (8N1).

        Raises:
            TransportError: If port cannot be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.timeout,
                write_timeout=self.timeout,
            )

            # Clear any junk in buffer
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()

            logger.debug(
                f"Opened {self.port} at {self.baudrate} bps "
                f"(timeout={self.timeout}s)"
            )
        except (serial.SerialException, ValueError) as e:
            raise TransportError(f"cannot open port {self.port}: {e}", {"port": self.port})
        return self

    def close(self) -> None:
        """Close serial port."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")

    def __enter__(self) -> "SerialTransport":
        if not self.is_open:
            self.open()
        return self

    def _require_open(self) -> serial.Serial:
        if not self.is_open:
            raise TransportError("serial port not open", {"port": self.port})
        return self.ser

    def write_all(self, data: bytes) -> None:
        """
        Send bytes to the device.

        Args:
            data: Bytes to send

        Raises:
            TransportError: If write fails or is incomplete
        """
        ser = self._require_open()

        try:
            written = ser.write(data)
        except serial.SerialException as e:
            raise TransportError(f"cannot write(): {e}", {"port": self.port})

        if written != len(data):
            raise TransportError(
                f"cannot write(): sent {written}/{len(data)} bytes",
                {"port": self.port, "expected": len(data), "received": written},
            )
        logger.debug(f">>> {data.hex().upper()}")

    def read_exact(self, length: int, timeout: Optional[float] = None) -> bytes:
        """
        Receive exactly ``length`` bytes from the device.

        Args:
            length: Number of bytes to receive
            timeout: Deadline override for this call (seconds)

        Returns:
            Bytes received

        Raises:
            TransportTimeout: If fewer bytes arrived before the deadline
            TransportError: If the port reports an error
        """
        ser = self._require_open()
        deadline = self.timeout if timeout is None else timeout

        try:
            ser.timeout = deadline
            data = ser.read(length)
        except serial.SerialException as e:
            raise TransportError(f"i/o error: {e}", {"port": self.port})

        if len(data) != length:
            raise TransportTimeout(
                f"read timeout: got {len(data)}/{length} bytes in {deadline}s",
                {"port": self.port, "expected": length, "received": data},
            )

        logger.debug(f"<<< {data.hex().upper()}")
        return data


def open_serial(
    port: str,
    baudrate: int = DEFAULT_BAUDRATE,
    timeout: float = DEFAULT_TIMEOUT,
) -> SerialTransport:
    """
    Open a serial transport connection.

    Args:
        port: Serial port name
        baudrate: Baud rate (default 9600)
        timeout: Per-read deadline in seconds (default 5.0)

    Returns:
        SerialTransport instance (already open)
    """
    transport = SerialTransport(port, baudrate, timeout)
    transport.open()
    return transport
