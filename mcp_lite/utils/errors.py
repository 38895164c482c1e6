"""Custom exception classes for the MCP server."""
from typing import Any, Optional


class ErrorCode:
    """JSON-RPC 2.0 standard error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class MCPError(Exception):
    """Base exception for MCP-related errors.

    Every subclass carries the JSON-RPC error code used when the error is
    reported back to a peer.
    """

    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = "", data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data


class ProtocolError(MCPError):
    """Malformed envelope or lifecycle violation."""

    code = ErrorCode.INVALID_REQUEST


class MethodNotFoundError(MCPError):
    """No handler registered for the requested method."""

    code = ErrorCode.METHOD_NOT_FOUND


class InvalidParamsError(MCPError):
    """Handler rejected its parameters."""

    code = ErrorCode.INVALID_PARAMS


class HandlerExecutionError(MCPError):
    """A request handler raised."""

    code = ErrorCode.INTERNAL_ERROR


class TransportError(MCPError):
    """Transport lifecycle errors (start twice, not started, bind failure)."""

    pass


class TransportClosedError(TransportError):
    """The transport or connection went away."""

    pass


class TransportFrameError(TransportError):
    """A single inbound frame could not be parsed."""

    code = ErrorCode.PARSE_ERROR

    def __init__(self, message: str, frame: bytes = b""):
        super().__init__(message)
        self.frame = frame


class FrameIntegrityError(TransportError):
    """An outbound message would break the one-document-per-line framing."""

    pass


class DeliveryError(TransportError):
    """A message could not be delivered to its target."""

    pass


class UnknownSessionError(DeliveryError):
    """Send was addressed to a session that is not registered."""

    def __init__(self, session_id: Optional[str]):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class RequestTimeoutError(MCPError, TimeoutError):
    """An outbound request got no response before its deadline.

    Local only, never transmitted to the peer.
    """

    pass


class RemoteError(MCPError):
    """The peer answered an outbound request with an error object."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        super().__init__(f"Error {code}: {message}", data)
        self.code = code
        self.remote_message = message


class ToolNotFoundError(MCPError):
    """Tool lookup errors."""

    pass


class ToolExecutionError(MCPError):
    """Tool execution errors."""

    pass
