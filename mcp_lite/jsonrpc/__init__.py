"""JSON-RPC 2.0 implementation for MCP protocol."""
from .models import (
    ClassifiedMessage,
    ErrorCode,
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    MessageKind,
    classify_message,
)
from .handler import JSONRPCHandler

__all__ = [
    "ClassifiedMessage",
    "ErrorCode",
    "JSONRPCError",
    "JSONRPCHandler",
    "JSONRPCNotification",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "MessageKind",
    "classify_message",
]
