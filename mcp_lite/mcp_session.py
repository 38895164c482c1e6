"""MCP Session Management for the HTTP+SSE transport."""
import asyncio
import uuid
import logging
from typing import Dict, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .utils.errors import DeliveryError

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


@dataclass
class MCPMessage:
    """Represents a message in the SSE stream."""
    id: str
    data: str
    event: Optional[str] = None


@dataclass
class MCPSession:
    """Represents an active MCP session.

    The message queue is the session's outbound channel; the SSE stream of
    the subscriber drains it. The queue is bounded: a subscriber that stops
    reading eventually makes ``queue_message`` fail instead of buffering
    without limit.
    """
    session_id: str
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    message_queue: asyncio.Queue = field(
        default_factory=lambda: asyncio.Queue(maxsize=DEFAULT_QUEUE_SIZE)
    )
    last_event_id: int = 0
    closed: bool = False
    # Set once the transport has reported this session's teardown
    close_reported: bool = False

    def get_next_event_id(self) -> str:
        """Generate next event ID for SSE."""
        self.last_event_id += 1
        return str(self.last_event_id)

    def touch(self):
        self.last_activity = datetime.now()

    def queue_message(self, data: str, event: Optional[str] = "message") -> MCPMessage:
        """Queue a message to be sent via SSE.

        Raises:
            DeliveryError: If the session is closed or its channel is full
        """
        if self.closed:
            raise DeliveryError(f"Session {self.session_id} is closed")
        message = MCPMessage(id=self.get_next_event_id(), data=data, event=event)
        try:
            self.message_queue.put_nowait(message)
        except asyncio.QueueFull:
            raise DeliveryError(f"Session {self.session_id} outbound channel is full")
        self.touch()
        return message

    def close(self):
        """Close the channel and wake up the stream reading it."""
        if self.closed:
            return
        self.closed = True
        # Pending frames are dropped; the None sentinel ends the stream.
        while not self.message_queue.empty():
            self.message_queue.get_nowait()
        self.message_queue.put_nowait(None)


class MCPSessionManager:
    """Manages MCP sessions for the HTTP+SSE transport.

    Owned by one transport instance and only touched from its event loop,
    which serializes concurrent subscribe/unsubscribe.
    """

    def __init__(self, session_timeout_minutes: float = 30, cleanup_interval: float = 300):
        self.sessions: Dict[str, MCPSession] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)
        self.cleanup_interval = cleanup_interval
        self._cleanup_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self.sessions

    def create_session(self, session_id: Optional[str] = None) -> MCPSession:
        """Create and register a new MCP session.

        A caller-supplied id that is already registered replaces the old
        session, whose channel is closed.
        """
        session_id = session_id or str(uuid.uuid4())
        previous = self.sessions.pop(session_id, None)
        if previous is not None:
            logger.warning(f"Replacing existing MCP session: {session_id}")
            previous.close()
        session = MCPSession(session_id=session_id)
        self.sessions[session_id] = session
        logger.info(f"Created MCP session: {session_id}")
        return session

    def get_session(self, session_id: str) -> Optional[MCPSession]:
        """Get an existing session by ID."""
        session = self.sessions.get(session_id)
        if session:
            session.touch()
        return session

    def delete_session(self, session_id: str, session: Optional[MCPSession] = None) -> Optional[MCPSession]:
        """Delete a session and close its channel.

        When ``session`` is given, the entry is only removed if it is still
        that same session object (a replacement is left alone).
        """
        current = self.sessions.get(session_id)
        if current is None or (session is not None and current is not session):
            return None
        del self.sessions[session_id]
        current.close()
        logger.info(f"Deleted MCP session: {session_id}")
        return current

    def list_sessions(self) -> List[MCPSession]:
        return list(self.sessions.values())

    def sole_session(self) -> Optional[MCPSession]:
        """Return the only registered session, or None if there are zero or several."""
        if len(self.sessions) == 1:
            return next(iter(self.sessions.values()))
        return None

    def close_all(self) -> List[MCPSession]:
        """Close and remove every session (shutdown)."""
        closed = list(self.sessions.values())
        self.sessions.clear()
        for session in closed:
            session.close()
        if closed:
            logger.info(f"Closed {len(closed)} MCP sessions")
        return closed

    async def cleanup_expired_sessions(self) -> List[str]:
        """Remove sessions that have been inactive for too long."""
        now = datetime.now()
        expired = [
            sid for sid, session in self.sessions.items()
            if now - session.last_activity > self.session_timeout
        ]
        for session_id in expired:
            self.delete_session(session_id)
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return expired

    async def start_cleanup_task(self):
        """Run the staleness sweep forever."""
        while True:
            await asyncio.sleep(self.cleanup_interval)
            await self.cleanup_expired_sessions()

    def start_background_cleanup(self):
        """Start cleanup task in background."""
        if not self._cleanup_task:
            self._cleanup_task = asyncio.create_task(self.start_cleanup_task())

    def stop_background_cleanup(self):
        """Stop cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None
