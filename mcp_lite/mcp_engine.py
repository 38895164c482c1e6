"""MCP protocol engine.

Consumes transport events, classifies every message, runs the
initialize/initialized handshake and dispatches requests and notifications
to the JSON-RPC handler registry. Responses to requests sent by this side
are routed to the correlator of the connection they arrived on.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set

from .correlator import DEFAULT_REQUEST_TIMEOUT, RequestCorrelator
from .jsonrpc.handler import JSONRPCHandler
from .jsonrpc.models import (
    ClassifiedMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    MessageKind,
    classify_message,
    make_error,
    make_notification,
)
from .transport.base import Transport, TransportListener
from .utils.errors import (
    DeliveryError,
    ErrorCode,
    ProtocolError,
    TransportClosedError,
    TransportError,
)
from .utils.validation import is_valid_request_id

logger = logging.getLogger(__name__)

LATEST_PROTOCOL_VERSION = "2024-11-05"
# Supported MCP protocol versions (newest first)
SUPPORTED_PROTOCOL_VERSIONS = (LATEST_PROTOCOL_VERSION, "2024-10-07")

INITIALIZE_METHOD = "initialize"
INITIALIZED_NOTIFICATION = "notifications/initialized"

DEFAULT_SERVER_INFO = {"name": "mcp-lite-server", "version": "0.1.0"}


class LifecycleState(Enum):
    """MCP connection lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class NegotiatedState:
    """Outcome of the initialize handshake, fixed for the connection's life."""

    protocol_version: str
    client_capabilities: Dict[str, Any]
    server_capabilities: Dict[str, Any]
    client_info: Optional[Dict[str, Any]]
    server_info: Dict[str, Any]


@dataclass
class Connection:
    """Per-connection protocol state.

    ``session_id`` is None for single-connection transports.
    """

    session_id: Optional[str]
    correlator: RequestCorrelator
    state: LifecycleState = LifecycleState.UNINITIALIZED
    negotiated: Optional[NegotiatedState] = None

    @property
    def is_ready(self) -> bool:
        return self.state == LifecycleState.READY


def negotiate_version(requested: Optional[str], supported=SUPPORTED_PROTOCOL_VERSIONS) -> str:
    """Accept the requested version if supported, else fall back to the latest."""
    if requested in supported:
        return requested
    return supported[0]


@dataclass
class EngineOptions:
    """Local identity and behaviour of an engine."""

    server_info: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SERVER_INFO))
    capabilities: Dict[str, Any] = field(default_factory=dict)
    instructions: Optional[str] = None
    supported_versions: tuple = SUPPORTED_PROTOCOL_VERSIONS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


class ProtocolEngine(TransportListener):
    """Runs the MCP protocol over one transport.

    All state is scoped to the instance, so several engines can coexist in
    one process. Dispatch of every request and notification is started in
    arrival order; handlers run as tasks so a slow handler does not hold up
    later frames, and their responses may complete out of order.
    """

    def __init__(
        self,
        options: Optional[EngineOptions] = None,
        handler: Optional[JSONRPCHandler] = None,
    ):
        self.options = options or EngineOptions()
        self.handler = handler or JSONRPCHandler()
        self.transport: Optional[Transport] = None
        self.connections: Dict[Optional[str], Connection] = {}
        self._tasks: Set[asyncio.Task] = set()

        self.handler.register_method("ping", self._handle_ping)

    # Wiring

    async def connect(self, transport: Transport) -> "ProtocolEngine":
        """Attach to a transport and start it."""
        self.transport = transport
        transport.add_listener(self)
        await transport.start()
        return self

    async def close(self):
        """Cancel in-flight dispatch and close the transport."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self.transport is not None:
            await self.transport.close()
            self.transport.remove_listener(self)
            self.transport = None
        self._drop_connections()

    async def wait_for_pending_tasks(self):
        """Wait until every dispatched request and notification finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def connection(self, session_id: Optional[str] = None) -> Connection:
        """Get or create the state of a connection."""
        conn = self.connections.get(session_id)
        if conn is None:
            async def send(message: Dict[str, Any]):
                await self._send(message, session_id)

            conn = Connection(
                session_id=session_id,
                correlator=RequestCorrelator(send, timeout=self.options.request_timeout),
            )
            self.connections[session_id] = conn
        return conn

    def state(self, session_id: Optional[str] = None) -> LifecycleState:
        conn = self.connections.get(session_id)
        return conn.state if conn else LifecycleState.UNINITIALIZED

    def negotiated(self, session_id: Optional[str] = None) -> Optional[NegotiatedState]:
        conn = self.connections.get(session_id)
        return conn.negotiated if conn else None

    # Outbound

    async def request(
        self,
        method: str,
        params: Optional[dict] = None,
        session_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request to the peer and wait for its result.

        Raises:
            RequestTimeoutError: If no response arrives before the deadline
            RemoteError: If the peer answered with an error
        """
        return await self.connection(session_id).correlator.request(method, params, timeout)

    async def notify(
        self,
        method: str,
        params: Optional[dict] = None,
        session_id: Optional[str] = None,
    ):
        """Send a notification to the peer."""
        await self._send(make_notification(method, params), session_id)

    async def _send(self, message: Dict[str, Any], session_id: Optional[str]):
        if self.transport is None:
            raise TransportError("Not connected")
        await self.transport.send(message, session_id)

    async def _reply(self, response: JSONRPCResponse, session_id: Optional[str]):
        try:
            await self._send(response.to_wire(), session_id)
        except (DeliveryError, TransportError) as e:
            logger.warning(f"Could not deliver response {response.id!r} to {session_id}: {e}")

    # Transport events

    async def on_message(self, message: Any, session_id: Optional[str] = None):
        classified = classify_message(message)
        conn = self.connection(session_id)

        if classified.kind == MessageKind.REQUEST:
            self._handle_request(conn, classified.message)
        elif classified.kind == MessageKind.NOTIFICATION:
            self._handle_notification(conn, classified.message)
        elif classified.kind == MessageKind.RESPONSE:
            conn.correlator.resolve(classified.message)
        else:
            await self._handle_invalid(classified, session_id)

    async def on_close(self, session_id: Optional[str] = None):
        if session_id is None:
            self._drop_connections()
            return
        conn = self.connections.pop(session_id, None)
        if conn is not None:
            self._close_connection(conn)

    async def on_error(self, error: Exception, session_id: Optional[str] = None):
        logger.warning(f"Transport error on {session_id or 'connection'}: {error}")

    # Dispatch

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _handle_request(self, conn: Connection, request: JSONRPCRequest):
        if conn.state == LifecycleState.CLOSED:
            logger.warning(f"Dropping request {request.method} on closed connection")
            return
        if request.method == INITIALIZE_METHOD:
            # Negotiated before the next frame is looked at
            try:
                result = self.initialize(conn, request.params or {})
                response = JSONRPCResponse.success(request.id, result)
            except ProtocolError as e:
                response = JSONRPCResponse.failure(request.id, e.code, str(e))
            self._spawn(self._reply(response, conn.session_id))
            return
        if not conn.is_ready:
            logger.debug(f"Request {request.method} received before initialization completed")
        self._spawn(self._dispatch_request(conn, request))

    async def _dispatch_request(self, conn: Connection, request: JSONRPCRequest):
        response = await self.handler.handle_request(request)
        await self._reply(response, conn.session_id)

    def initialize(self, conn: Connection, params: Dict[str, Any]) -> Dict[str, Any]:
        """Negotiate the protocol version and capabilities.

        An unsupported version is never an error: the latest supported one
        is offered instead.

        Raises:
            ProtocolError: If the connection was already initialized
        """
        if conn.state != LifecycleState.UNINITIALIZED:
            raise ProtocolError("Connection already initialized")

        requested = params.get("protocolVersion")
        version = negotiate_version(requested, self.options.supported_versions)
        if version != requested:
            logger.warning(f"Client requested unsupported protocol version {requested!r}, offering {version}")

        conn.state = LifecycleState.INITIALIZING
        conn.negotiated = NegotiatedState(
            protocol_version=version,
            client_capabilities=params.get("capabilities") or {},
            server_capabilities=self.options.capabilities,
            client_info=params.get("clientInfo"),
            server_info=self.options.server_info,
        )

        result = {
            "protocolVersion": version,
            "capabilities": self.options.capabilities,
            "serverInfo": self.options.server_info,
        }
        if self.options.instructions:
            result["instructions"] = self.options.instructions
        return result

    def _handle_notification(self, conn: Connection, notification: JSONRPCNotification):
        if notification.method == INITIALIZED_NOTIFICATION:
            if conn.state != LifecycleState.INITIALIZING:
                logger.warning(f"Initialized notification received in state {conn.state.value}")
            if conn.state != LifecycleState.CLOSED:
                conn.state = LifecycleState.READY
                logger.info(f"Initialization completed for {conn.session_id or 'connection'}")
            return
        self._spawn(self.handler.handle_notification(notification))

    async def _handle_invalid(self, classified: ClassifiedMessage, session_id: Optional[str]):
        if not classified.has_id:
            logger.warning(f"Dropping invalid message without id: {classified.reason}")
            return
        logger.warning(f"Invalid request {classified.id!r}: {classified.reason}")
        reply_id = classified.id if is_valid_request_id(classified.id) else None
        try:
            await self._send(
                make_error(reply_id, ErrorCode.INVALID_REQUEST, f"Invalid Request: {classified.reason}"),
                session_id,
            )
        except (DeliveryError, TransportError) as e:
            logger.warning(f"Could not deliver error for invalid request: {e}")

    async def _handle_ping(self, params: dict) -> dict:
        return {}

    def _close_connection(self, conn: Connection):
        conn.state = LifecycleState.CLOSED
        conn.correlator.cancel_all(TransportClosedError(f"Connection {conn.session_id or ''} closed".strip()))

    def _drop_connections(self):
        connections = list(self.connections.values())
        self.connections.clear()
        for conn in connections:
            self._close_connection(conn)
