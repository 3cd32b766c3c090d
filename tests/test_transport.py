"""Tests for the serial transport wrapper."""

from unittest.mock import MagicMock

import pytest
import serial

from vuxprog.errors import TransportError, TransportTimeout
from vuxprog.protocol.transport import SerialTransport


def _transport(ser: MagicMock) -> SerialTransport:
    transport = SerialTransport("/dev/null", timeout=5.0)
    ser.is_open = True
    transport.ser = ser
    return transport


class TestSerialTransport:
    """Test read/write contracts against a mocked pyserial port."""

    def test_read_exact_returns_bytes(self):
        ser = MagicMock()
        ser.read.return_value = b"VuX"
        transport = _transport(ser)

        assert transport.read_exact(3) == b"VuX"
        ser.read.assert_called_once_with(3)
        assert ser.timeout == 5.0

    def test_read_exact_deadline_override(self):
        ser = MagicMock()
        ser.read.return_value = b"."
        transport = _transport(ser)
        transport.read_exact(1, timeout=0.5)
        assert ser.timeout == 0.5

    def test_short_read_is_timeout(self):
        ser = MagicMock()
        ser.read.return_value = b"Vu"
        transport = _transport(ser)

        with pytest.raises(TransportTimeout) as exc:
            transport.read_exact(3)
        assert exc.value.details["received"] == b"Vu"

    def test_read_error(self):
        ser = MagicMock()
        ser.read.side_effect = serial.SerialException("device reports readiness to read but returned no data")
        with pytest.raises(TransportError):
            _transport(ser).read_exact(1)

    def test_write_all(self):
        ser = MagicMock()
        ser.write.return_value = 3
        _transport(ser).write_all(b"r\x00\x00")
        ser.write.assert_called_once_with(b"r\x00\x00")

    def test_short_write_is_fatal(self):
        ser = MagicMock()
        ser.write.return_value = 1
        with pytest.raises(TransportError) as exc:
            _transport(ser).write_all(b"abc")
        assert "1/3" in str(exc.value)
        ser.write.assert_called_once()

    def test_write_error(self):
        ser = MagicMock()
        ser.write.side_effect = serial.SerialTimeoutException("Write timeout")
        with pytest.raises(TransportError):
            _transport(ser).write_all(b"s")

    def test_closed_port(self):
        transport = SerialTransport("/dev/null")
        with pytest.raises(TransportError):
            transport.read_exact(1)
        with pytest.raises(TransportError):
            transport.write_all(b"s")

    def test_open_failure(self, monkeypatch):
        def fail(**kwargs):
            raise serial.SerialException("could not open port")

        monkeypatch.setattr(serial, "Serial", fail)
        with pytest.raises(TransportError) as exc:
            SerialTransport("/dev/ttyUSB9").open()
        assert "/dev/ttyUSB9" in str(exc.value)

    def test_close(self):
        ser = MagicMock()
        transport = _transport(ser)
        transport.close()
        ser.close.assert_called_once()
