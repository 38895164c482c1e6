"""Newline-delimited JSON framing for byte-stream transports.

Invariant: exactly one JSON document per delimited unit. Outbound messages
are rejected before any byte is written if their serialized form contains
the delimiter; inbound bytes are buffered until a delimiter completes a
frame, whatever the chunk boundaries.
"""
import json
from typing import Any, Callable, List

from ..utils.errors import FrameIntegrityError, TransportFrameError

DELIMITER = b"\n"

Serializer = Callable[[Any], str]


def default_serializer(message: Any) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


class LineFramer:
    """Splits a byte stream into complete lines.

    Decoding to text happens per complete line, so a multi-byte UTF-8
    character split across two chunks is reassembled before it is decoded.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """The retained, not yet delimited fragment."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> List[bytes]:
        """Append a chunk and return every complete, non-blank line in it."""
        self._buffer.extend(chunk)
        if DELIMITER not in chunk:
            return []

        *lines, rest = bytes(self._buffer).split(DELIMITER)
        self._buffer = bytearray(rest)
        return [line for line in lines if line.strip()]

    def reset(self) -> bytes:
        """Drop and return the retained fragment."""
        rest = bytes(self._buffer)
        self._buffer.clear()
        return rest


def decode_frame(line: bytes) -> Any:
    """Parse one frame as a UTF-8 JSON document.

    Raises:
        TransportFrameError: If the frame is not valid UTF-8 JSON
    """
    try:
        return json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TransportFrameError(f"Failed to parse JSON: {e}", frame=line)


def encode_frame(message: Any, serializer: Serializer = default_serializer) -> bytes:
    """Serialize a message into one delimited frame.

    Raises:
        FrameIntegrityError: If the serialized message contains a line break
    """
    text = serializer(message)
    if "\n" in text:
        raise FrameIntegrityError("Invalid message: MCP messages must not contain newlines")
    return text.encode("utf-8") + DELIMITER
