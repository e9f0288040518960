"""
Gamepad Tests
=============

HID report decoding.
"""

import pytest

from gameview.control import InvalidReportError, parse_report


class TestParseReport:
    """Tests for report message decoding."""

    def test_byte_array(self):
        """Verify a JSON array becomes raw bytes."""
        assert parse_report("[1, 0, 255, 16]") == b"\x01\x00\xff\x10"

    def test_base64_string(self):
        """Verify a JSON string is base64 decoded."""
        assert parse_report('"AQD/EA=="') == b"\x01\x00\xff\x10"

    def test_bytes_message(self):
        """Verify binary WebSocket frames carrying JSON are accepted."""
        assert parse_report(b"[7, 8]") == b"\x07\x08"

    def test_empty_report(self):
        """Verify an empty array is an empty report."""
        assert parse_report("[]") == b""

    @pytest.mark.parametrize("message", [
        "not json",
        "[256]",
        "[-1]",
        "[1.5]",
        "[true]",
        '["a"]',
        '"not base64!"',
        '{"buttons": 1}',
        "42",
        b"\xff\xfe",
    ])
    def test_invalid(self, message):
        """Verify anything but a byte array or base64 string is rejected."""
        with pytest.raises(InvalidReportError):
            parse_report(message)
