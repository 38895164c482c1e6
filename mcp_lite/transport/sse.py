"""MCP HTTP+SSE transport implementation.

Clients open a long-lived GET on the endpoint to receive an SSE stream and
POST each JSON-RPC message to the same endpoint. The POST is acknowledged
immediately with 202; the JSON-RPC response follows later on the stream of
the session the message was submitted for.
"""
import asyncio
import json
import logging
import socket
import time
from typing import Any, AsyncGenerator, Dict, Optional
from urllib.parse import quote

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sse_starlette.sse import EventSourceResponse

from .. import __version__
from ..jsonrpc.models import JSONRPC_VERSION, make_error
from ..mcp_session import MCPSession, MCPSessionManager
from ..utils.errors import (
    DeliveryError,
    ErrorCode,
    ProtocolError,
    TransportError,
    UnknownSessionError,
)
from ..utils.validation import is_valid_request_id, validate_session_id
from .base import Transport

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-ID"
SESSION_QUERY_PARAM = "sessionId"
DEFAULT_KEEPALIVE_INTERVAL = 30.0


class SseTransport(Transport):
    """Session-multiplexed push transport over HTTP POST + SSE."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5000,
        endpoint: str = "/sse",
        cors: bool = True,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        allow_session_fallback: bool = True,
        session_timeout_minutes: float = 30,
        cleanup_interval: float = 300,
        service_name: str = "mcp-lite-server",
        log_level: str = "info",
    ):
        """Initialize the transport.

        Args:
            host: Interface to bind
            port: Port to bind (0 picks a free port)
            endpoint: Path serving both the SSE stream and submissions
            cors: Add permissive CORS headers
            keepalive_interval: Idle seconds before a keepalive comment
            allow_session_fallback: Route submissions without a session id
                to the only open session, if there is exactly one
            session_timeout_minutes: Inactivity bound for the session sweep
            cleanup_interval: Seconds between session sweeps
            service_name: Name reported by the health endpoint
            log_level: uvicorn log level
        """
        super().__init__()
        self.host = host
        self.port = port
        self.endpoint = endpoint
        self.cors = cors
        self.keepalive_interval = keepalive_interval
        self.allow_session_fallback = allow_session_fallback
        self.service_name = service_name
        self.log_level = log_level
        self.sessions = MCPSessionManager(
            session_timeout_minutes=session_timeout_minutes,
            cleanup_interval=cleanup_interval,
        )
        self.app = self._create_app()
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._started_at = time.monotonic()

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="MCP Lite Server",
            description="MCP server with HTTP+SSE transport",
            version=__version__,
        )

        if self.cors:
            app.add_middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["Content-Type", SESSION_HEADER],
            )

        @app.get(self.endpoint)
        async def sse_endpoint(request: Request):
            """Open the SSE stream of a new session."""
            return await self.handle_get_request(request)

        @app.post(self.endpoint)
        async def message_endpoint(request: Request):
            """Submit one JSON-RPC message for a session."""
            return await self.handle_post_request(request)

        @app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {
                "status": "healthy",
                "service": self.service_name,
                "version": __version__,
                "transport": "HTTP+SSE",
            }

        @app.get("/status")
        async def status():
            """Session count and uptime."""
            return {
                "status": "ok",
                "sessions": len(self.sessions),
                "uptime": round(time.monotonic() - self._started_at, 3),
            }

        return app

    # Lifecycle

    async def _start(self):
        try:
            sock = socket.create_server((self.host, self.port))
        except OSError as e:
            raise TransportError(f"Failed to bind {self.host}:{self.port}: {e}")
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            log_level=self.log_level,
            log_config=None,
            timeout_graceful_shutdown=5,
        )
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._serve(sock))

        while not self._server.started:
            if self._server_task.done():
                raise TransportError(f"HTTP server failed to start on {self.host}:{self.port}")
            await asyncio.sleep(0.01)

        self._started_at = time.monotonic()
        self.sessions.start_background_cleanup()
        logger.info(
            f"HTTP+SSE transport started at http://{self.host}:{self.port}{self.endpoint}"
        )

    async def _serve(self, sock: socket.socket):
        try:
            await self._server.serve(sockets=[sock])
        finally:
            sock.close()
            if not self._closed:
                # Server stopped on its own (e.g. a signal), shut the transport down too
                logger.info("HTTP server exited, closing transport")
                self._server_task = None
                self._shutdown_task = asyncio.create_task(self.close())

    async def _close(self):
        self.sessions.stop_background_cleanup()
        for session in self.sessions.close_all():
            await self.release_session(session)

        if self._server is not None and self._server_task is not None:
            self._server.should_exit = True
            if self._server_task is not asyncio.current_task():
                await self._server_task
        self._server_task = None
        logger.info("SseTransport: Server closed")

    # Sessions

    def endpoint_url(self, session_id: str) -> str:
        """Relative submission address announced to a subscriber."""
        return f"{self.endpoint}?{SESSION_QUERY_PARAM}={quote(session_id, safe='')}"

    async def open_session(self, session_id: Optional[str] = None) -> MCPSession:
        """Register a subscriber's session and queue its endpoint event.

        A caller-supplied id that is already open replaces that session.
        """
        if session_id:
            existing = self.sessions.sessions.get(session_id)
            if existing is not None:
                await self.release_session(existing)
        session = self.sessions.create_session(session_id)
        session.queue_message(self.endpoint_url(session.session_id), event="endpoint")
        return session

    async def release_session(self, session: MCPSession):
        """Tear a session down and report it, once per session."""
        if session.close_reported:
            return
        session.close_reported = True
        self.sessions.delete_session(session.session_id, session)
        session.close()
        logger.info(f"SSE connection closed, sessionId: {session.session_id}")
        await self._emit_close(session.session_id)

    def resolve_session_id(self, token: Optional[str]) -> str:
        """Pick the session a submission is for.

        Raises:
            ProtocolError: If no session id was supplied and none can be
                inferred
        """
        if token:
            return token
        if self.allow_session_fallback:
            session = self.sessions.sole_session()
            if session is not None:
                logger.warning(
                    f"No session ID provided, auto-selecting {session.session_id}"
                )
                return session.session_id
        raise ProtocolError("No session ID provided")

    async def event_stream(self, session: MCPSession) -> AsyncGenerator[dict, None]:
        """Generate the SSE events of one session."""
        try:
            while True:
                try:
                    message = await asyncio.wait_for(
                        session.message_queue.get(),
                        timeout=self.keepalive_interval
                    )
                except asyncio.TimeoutError:
                    if session.closed:
                        break
                    session.touch()
                    yield {"comment": "keepalive"}
                    continue

                if message is None:
                    break
                yield {
                    "data": message.data,
                    "event": message.event or "message",
                    "id": message.id
                }
        except asyncio.CancelledError:
            logger.info(f"SSE stream cancelled for session {session.session_id}")
            raise
        finally:
            await self.release_session(session)

    # HTTP handlers

    async def handle_get_request(self, request: Request) -> Response:
        """Handle GET request opening an SSE stream."""
        token = request.query_params.get(SESSION_QUERY_PARAM) or request.headers.get(SESSION_HEADER)
        if token and not validate_session_id(token):
            return JSONResponse(
                status_code=400,
                content={"error": f"Invalid session ID: {token}"},
            )

        session = await self.open_session(token)
        logger.info(f"New SSE connection established, sessionId: {session.session_id}")
        return EventSourceResponse(
            self.event_stream(session),
            headers={SESSION_HEADER: session.session_id},
        )

    async def handle_post_request(self, request: Request) -> Response:
        """Handle POST request carrying one JSON-RPC message."""
        try:
            message = await request.json()
        except ValueError:
            return JSONResponse(
                status_code=400,
                content=make_error(None, ErrorCode.PARSE_ERROR, "Parse error"),
            )

        if not isinstance(message, dict) or message.get("jsonrpc") != JSONRPC_VERSION:
            msg_id = _reply_id(message)
            return JSONResponse(
                status_code=400,
                content=make_error(
                    msg_id,
                    ErrorCode.INVALID_REQUEST,
                    "Invalid Request",
                    "Not a valid JSON-RPC 2.0 request",
                ),
            )

        token = request.query_params.get(SESSION_QUERY_PARAM) or request.headers.get(SESSION_HEADER)
        try:
            session_id = self.resolve_session_id(token)
        except ProtocolError as e:
            return JSONResponse(
                status_code=400,
                content=make_error(_reply_id(message), ErrorCode.INVALID_REQUEST, str(e)),
            )

        if session_id not in self.sessions:
            return JSONResponse(
                status_code=404,
                content=make_error(
                    _reply_id(message), ErrorCode.INVALID_REQUEST, f"Session {session_id} not found"
                ),
            )

        await self.submit(message, session_id)
        return JSONResponse(status_code=202, content={"status": "accepted"})

    async def submit(self, message: Dict[str, Any], session_id: str):
        """Hand an accepted submission to the listeners."""
        logger.debug(f"Received message from session {session_id}")
        await self._emit_message(message, session_id)

    # Outbound

    async def send(self, message: Dict[str, Any], session_id: Optional[str] = None) -> None:
        """Push a message onto a session's stream.

        Raises:
            UnknownSessionError: If the session is not registered
            DeliveryError: If the session's channel failed; the session is
                evicted
        """
        session = self.sessions.get_session(session_id) if session_id else None
        if session is None:
            raise UnknownSessionError(session_id)

        try:
            session.queue_message(json.dumps(message), event="message")
        except DeliveryError:
            logger.error(f"Removing dead session {session_id}")
            await self.release_session(session)
            raise


def _reply_id(message: Any):
    """Id to echo in an error reply, if the submission carried a usable one."""
    if isinstance(message, dict) and is_valid_request_id(message.get("id")):
        return message["id"]
    return None
