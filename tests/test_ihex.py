"""Tests for the Intel-HEX codec."""

import pytest

from vuxprog import ihex
from vuxprog.errors import CodecError, CodecErrorKind, ErrorKind


def _record(address: int, rtype: int, payload: bytes) -> str:
    return ihex.HexRecord.build(address, rtype, payload).to_line()


class TestEncode:
    """Test image to Intel-HEX encoding."""

    def test_single_block_golden_line(self):
        """One 16-byte block encodes to a known type-00 record."""
        text = ihex.encode(bytes(range(16)))
        assert text == (
            ":10000000000102030405060708090A0B0C0D0E0F78\n"
            ":00000001FF\n"
        )

    def test_erased_blocks_are_skipped(self):
        """All-0xFF blocks produce no record."""
        image = b"\xff" * 16 + b"\x00" * 16 + b"\xff" * 16
        lines = ihex.encode(image).splitlines()
        assert len(lines) == 2
        assert lines[0].startswith(":10001000")
        assert lines[-1] == ihex.EOF_LINE

    def test_empty_image_is_only_eof(self):
        assert ihex.encode(b"") == ":00000001FF\n"

    def test_unaligned_image_rejected(self):
        """Callers must pad to 16 bytes before encoding."""
        with pytest.raises(CodecError) as exc:
            ihex.encode(b"\x00" * 15)
        assert exc.value.reason is CodecErrorKind.FORMAT

    def test_every_record_sums_to_zero(self):
        image = bytes((i * 7) & 0xFF for i in range(64))
        for line in ihex.encode(image).splitlines():
            assert sum(bytes.fromhex(line[1:])) & 0xFF == 0


class TestDecode:
    """Test Intel-HEX to image decoding."""

    def test_roundtrip_aligned_images(self):
        """decode(encode(I)) == I when the last block is not erased."""
        images = [
            bytes(range(16)),
            bytes(range(256)) * 2,
            b"\xff" * 32 + b"\x12" * 16,
            b"\x00" * 16 + b"\xff" * 16 + b"\xab" * 16,
        ]
        for image in images:
            assert bytes(ihex.decode(ihex.encode(image))) == image

    def test_gap_is_filled_with_ff(self):
        text = _record(0x0010, 0, b"\x01\x02") + "\n" + ihex.EOF_LINE
        image = ihex.decode(text)
        assert image == b"\xff" * 16 + b"\x01\x02"

    def test_crlf_line_endings(self):
        text = _record(0, 0, b"\xaa\xbb") + "\r\n" + ihex.EOF_LINE + "\r\n"
        assert ihex.decode(text) == b"\xaa\xbb"

    def test_data_after_eof_is_ignored(self):
        text = "\n".join([
            _record(0, 0, b"\x01"),
            ihex.EOF_LINE,
            _record(0, 0, b"\x02"),
        ])
        assert ihex.decode(text) == b"\x01"

    def test_later_record_overwrites_earlier(self):
        text = "\n".join([
            _record(0, 0, b"\x01\x02\x03"),
            _record(1, 0, b"\x09"),
            ihex.EOF_LINE,
        ])
        assert ihex.decode(text) == b"\x01\x09\x03"

    def test_bad_checksum_rejected(self):
        """A record whose byte sum is non-zero is BAD_CHECKSUM."""
        line = _record(0, 0, b"\x01\x02")
        corrupted = line[:-2] + "%02X" % ((int(line[-2:], 16) + 1) & 0xFF)
        with pytest.raises(CodecError) as exc:
            ihex.decode(corrupted + "\n" + ihex.EOF_LINE)
        assert exc.value.reason is CodecErrorKind.BAD_CHECKSUM
        assert exc.value.kind is ErrorKind.CODEC
        assert exc.value.details["line"] == 1

    def test_missing_eof_is_truncated(self):
        with pytest.raises(CodecError) as exc:
            ihex.decode(_record(0, 0, b"\x01\x02") + "\n")
        assert exc.value.reason is CodecErrorKind.TRUNCATED

    def test_empty_text_is_truncated(self):
        with pytest.raises(CodecError) as exc:
            ihex.decode("")
        assert exc.value.reason is CodecErrorKind.TRUNCATED

    def test_unknown_record_type(self):
        with pytest.raises(CodecError) as exc:
            ihex.decode(_record(0, 4, b"\x00\x00") + "\n" + ihex.EOF_LINE)
        assert exc.value.reason is CodecErrorKind.UNKNOWN_TYPE

    @pytest.mark.parametrize("line", [
        "10000000",                      # no colon
        ":0000000",                      # too short
        ":000000001FF",                  # even length
        ":0000000GFF",                   # not hex
        ":0200000001FD",                 # length byte says 2, no payload
        ":" + " " * 10,                  # whitespace only
        ":00 000001 FF",                 # embedded spaces
    ])
    def test_malformed_lines(self, line):
        with pytest.raises(CodecError) as exc:
            ihex.decode(line + "\n" + ihex.EOF_LINE)
        assert exc.value.reason is CodecErrorKind.FORMAT

    def test_blank_line_is_format_error(self):
        with pytest.raises(CodecError) as exc:
            ihex.decode(_record(0, 0, b"\x01") + "\n\n" + ihex.EOF_LINE)
        assert exc.value.reason is CodecErrorKind.FORMAT


class TestOriginRecord:
    """Type-03 records erase everything below the origin."""

    def test_origin_before_data(self):
        """Origin first: bytes below it read 0xFF, data above it is kept."""
        text = "\n".join([
            _record(0, 3, (8).to_bytes(4, "big")),
            _record(8, 0, b"\x11\x22"),
            ihex.EOF_LINE,
        ])
        image = ihex.decode(text)
        assert image[:8] == b"\xff" * 8
        assert image[8:] == b"\x11\x22"

    def test_origin_after_data(self):
        """Origin last: earlier data below it is erased."""
        text = "\n".join([
            _record(0, 0, bytes(range(12))),
            _record(0, 3, (8).to_bytes(4, "big")),
            ihex.EOF_LINE,
        ])
        image = ihex.decode(text)
        assert image[:8] == b"\xff" * 8
        assert image[8:] == bytes(range(8, 12))

    def test_origin_beyond_image_grows_it(self):
        text = _record(0, 3, (4).to_bytes(4, "big")) + "\n" + ihex.EOF_LINE
        assert ihex.decode(text) == b"\xff" * 4

    def test_origin_needs_four_byte_payload(self):
        with pytest.raises(CodecError) as exc:
            ihex.decode(_record(0, 3, b"\x00\x08") + "\n" + ihex.EOF_LINE)
        assert exc.value.reason is CodecErrorKind.FORMAT

    def test_origin_beyond_16_bit_space(self):
        """An origin past 64 KiB is rejected before the image grows."""
        text = _record(0, 3, (0x7FFFFFFF).to_bytes(4, "big")) + "\n" + ihex.EOF_LINE
        with pytest.raises(CodecError) as exc:
            ihex.decode(text)
        assert exc.value.reason is CodecErrorKind.FORMAT
        assert exc.value.details["line"] == 1

    def test_origin_at_16_bit_limit(self):
        text = _record(0, 3, (0x10000).to_bytes(4, "big")) + "\n" + ihex.EOF_LINE
        assert len(ihex.decode(text)) == 0x10000


def test_parse_record_fields():
    record = ihex.parse_record(":0300300002337A1E")
    assert record.length == 3
    assert record.address == 0x0030
    assert record.type == 0
    assert record.payload == b"\x02\x33\x7a"
    assert record.checksum == 0x1E
    assert record.to_line() == ":0300300002337A1E"


def test_pad_image():
    assert ihex.pad_image(b"\x01", 4) == b"\x01\xff\xff\xff"
    assert ihex.pad_image(b"\x01\x02", 2) == b"\x01\x02"
    assert ihex.pad_image(b"", 16) == b""
