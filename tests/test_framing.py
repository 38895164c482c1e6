"""Unit tests for newline-delimited framing."""
import json

import pytest

from mcp_lite.transport.framing import LineFramer, decode_frame, encode_frame
from mcp_lite.utils.errors import FrameIntegrityError, TransportFrameError


class TestLineFramer:
    """Test splitting a byte stream into lines."""

    def test_complete_lines(self):
        """Test several frames in one chunk come out in order."""
        framer = LineFramer()
        assert framer.feed(b'{"a":1}\n{"b":2}\n') == [b'{"a":1}', b'{"b":2}']
        assert framer.pending == b""

    def test_fragment_is_retained(self):
        """Test a frame split across chunks is delivered once complete."""
        framer = LineFramer()
        assert framer.feed(b'{"jsonrpc":"2.') == []
        assert framer.pending == b'{"jsonrpc":"2.'
        assert framer.feed(b'0"}\n{"x"') == [b'{"jsonrpc":"2.0"}']
        assert framer.pending == b'{"x"'

    def test_every_split_point(self):
        """Test the same frames result whatever the chunk boundary."""
        data = b'{"id":1}\n{"id":2}\n'
        for split in range(len(data) + 1):
            framer = LineFramer()
            lines = framer.feed(data[:split]) + framer.feed(data[split:])
            assert lines == [b'{"id":1}', b'{"id":2}']

    def test_utf8_split_across_chunks(self):
        """Test a multi-byte character split between chunks is reassembled."""
        frame = json.dumps({"text": "héllo ☃"}, ensure_ascii=False).encode("utf-8") + b"\n"
        cut = frame.index("☃".encode("utf-8")) + 1
        framer = LineFramer()

        lines = framer.feed(frame[:cut]) + framer.feed(frame[cut:])

        assert decode_frame(lines[0]) == {"text": "héllo ☃"}

    def test_blank_lines_skipped(self):
        """Test empty and whitespace-only lines are not frames."""
        framer = LineFramer()
        assert framer.feed(b'\n  \n{"a":1}\n\n') == [b'{"a":1}']

    def test_reset_returns_fragment(self):
        """Test reset drops the trailing fragment."""
        framer = LineFramer()
        framer.feed(b"partial")
        assert framer.reset() == b"partial"
        assert framer.pending == b""


class TestFrameCodec:
    """Test frame encoding and decoding."""

    def test_decode_invalid_json(self):
        """Test a bad line raises a per-frame error carrying the bytes."""
        with pytest.raises(TransportFrameError) as exc_info:
            decode_frame(b"{not json")
        assert exc_info.value.frame == b"{not json"
        assert exc_info.value.code == -32700

    def test_decode_invalid_utf8(self):
        """Test undecodable bytes are a frame error."""
        with pytest.raises(TransportFrameError):
            decode_frame(b"\xff\xfe")

    def test_encode_appends_single_newline(self):
        """Test an encoded message is one line ending in a newline."""
        frame = encode_frame({"jsonrpc": "2.0", "method": "ping", "id": 1})
        assert frame.endswith(b"\n")
        assert frame.count(b"\n") == 1
        assert json.loads(frame) == {"jsonrpc": "2.0", "method": "ping", "id": 1}

    def test_encode_escapes_newlines_in_strings(self):
        """Test newlines inside string values are escaped, not framed."""
        frame = encode_frame({"text": "line1\nline2"})
        assert frame.count(b"\n") == 1

    def test_encode_rejects_multiline_serializer(self):
        """Test a serializer producing a line break is rejected."""
        def pretty(message):
            return json.dumps(message, indent=2)

        with pytest.raises(FrameIntegrityError):
            encode_frame({"a": 1}, serializer=pretty)
