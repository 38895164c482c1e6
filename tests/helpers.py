"""Shared test helpers."""
from typing import Any, Dict, List, Optional, Tuple

from mcp_lite.transport.base import Transport
from mcp_lite.utils.errors import UnknownSessionError


class FakeTransport(Transport):
    """In-memory transport recording everything sent through it."""

    def __init__(self, sessions: Optional[List[str]] = None):
        super().__init__()
        self.sent: List[Tuple[Optional[str], Dict[str, Any]]] = []
        self.sessions = sessions

    async def _start(self):
        pass

    async def _close(self):
        pass

    async def send(self, message: Dict[str, Any], session_id: Optional[str] = None) -> None:
        if self.sessions is not None and session_id not in self.sessions:
            raise UnknownSessionError(session_id)
        self.sent.append((session_id, message))

    async def deliver(self, message: Any, session_id: Optional[str] = None):
        await self._emit_message(message, session_id)

    async def disconnect(self, session_id: str):
        if self.sessions is not None:
            self.sessions.remove(session_id)
        await self._emit_close(session_id)

    def messages(self, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [m for sid, m in self.sent if sid == session_id]


INITIALIZE_PARAMS = {
    "protocolVersion": "2024-11-05",
    "capabilities": {},
    "clientInfo": {"name": "test-client", "version": "1.0.0"},
}
