"""Transport abstraction shared by the stdio and HTTP+SSE transports.

A transport only moves framed JSON documents: it knows nothing about
JSON-RPC beyond "one message per frame". Consumers register listeners
instead of assigning callbacks, so several observers can watch one
transport and are always called in registration order.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..utils.errors import TransportError

logger = logging.getLogger(__name__)


class TransportListener:
    """Observer of transport events.

    ``session_id`` is None on transports that carry a single connection.
    """

    async def on_message(self, message: Any, session_id: Optional[str] = None) -> None:
        pass

    async def on_close(self, session_id: Optional[str] = None) -> None:
        pass

    async def on_error(self, error: Exception, session_id: Optional[str] = None) -> None:
        pass


class Transport(ABC):
    """Abstract bidirectional message transport."""

    def __init__(self):
        self._listeners: List[TransportListener] = []
        self._started = False
        self._closed = False
        self._closed_event: Optional[asyncio.Event] = None

    def add_listener(self, listener: TransportListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: TransportListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def start(self):
        """Begin accepting and producing messages.

        Raises:
            TransportError: If called twice on one instance, or if the
                underlying resource cannot be acquired
        """
        if self._started:
            raise TransportError(f"{type(self).__name__} already started")
        self._started = True
        self._closed_event = asyncio.Event()
        await self._start()

    async def close(self):
        """Release all resources. Safe to call more than once."""
        if self._closed or not self._started:
            return
        self._closed = True
        try:
            await self._close()
        finally:
            if self._closed_event is not None:
                self._closed_event.set()
            await self._emit_close(None)

    async def wait_closed(self):
        """Wait until the transport has been closed."""
        if not self._started:
            raise TransportError(f"{type(self).__name__} not started")
        await self._closed_event.wait()

    async def wait_input_closed(self):
        """Wait until no more inbound messages will arrive.

        Outbound sends may still succeed afterwards on transports whose
        input can end on its own (e.g. EOF on stdin). By default this is the
        same as ``wait_closed``.
        """
        await self.wait_closed()

    @abstractmethod
    async def send(self, message: Dict[str, Any], session_id: Optional[str] = None) -> None:
        """Deliver one message.

        Raises:
            DeliveryError: If the target is gone
        """

    @abstractmethod
    async def _start(self) -> None:
        ...

    @abstractmethod
    async def _close(self) -> None:
        ...

    async def _emit_message(self, message: Any, session_id: Optional[str] = None):
        for listener in list(self._listeners):
            try:
                await listener.on_message(message, session_id)
            except Exception as e:
                logger.error(f"Listener failed handling message: {e}", exc_info=True)

    async def _emit_error(self, error: Exception, session_id: Optional[str] = None):
        for listener in list(self._listeners):
            try:
                await listener.on_error(error, session_id)
            except Exception as e:
                logger.error(f"Listener failed handling error: {e}", exc_info=True)

    async def _emit_close(self, session_id: Optional[str] = None):
        for listener in list(self._listeners):
            try:
                await listener.on_close(session_id)
            except Exception as e:
                logger.error(f"Listener failed handling close: {e}", exc_info=True)

    async def __aenter__(self) -> "Transport":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
