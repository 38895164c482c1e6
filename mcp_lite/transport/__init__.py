"""Transports carrying JSON-RPC messages between MCP peers."""
from .base import Transport, TransportListener
from .framing import LineFramer, decode_frame, encode_frame
from .stdio import StdioTransport
from .sse import SseTransport

__all__ = [
    "LineFramer",
    "SseTransport",
    "StdioTransport",
    "Transport",
    "TransportListener",
    "decode_frame",
    "encode_frame",
]
