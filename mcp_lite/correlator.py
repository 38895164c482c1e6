"""Correlation of outbound requests with their responses."""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from .jsonrpc.models import JSONRPCResponse, RequestId, make_request
from .utils.errors import RemoteError, RequestTimeoutError, TransportClosedError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 60.0

SendFunc = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass
class PendingRequest:
    """An outbound request waiting for its response."""
    id: RequestId
    method: str
    future: asyncio.Future
    created_at: float = field(default_factory=time.monotonic)
    deadline: float = 0.0
    timer: Optional[asyncio.TimerHandle] = None

    def cancel_timer(self):
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class RequestCorrelator:
    """Tracks outbound requests awaiting a response.

    One correlator serves one connection. Ids are allocated from a
    monotonically increasing counter, so they never collide with a request
    that is still pending. Each pending entry owns its deadline timer; the
    timer is cancelled in the same step that removes the entry.
    """

    def __init__(self, send: SendFunc, timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self._send = send
        self.timeout = timeout
        self._pending: Dict[RequestId, PendingRequest] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: RequestId) -> bool:
        return request_id in self._pending

    def _allocate_id(self) -> int:
        self._next_id += 1
        while self._next_id in self._pending:
            self._next_id += 1
        return self._next_id

    async def issue(
        self,
        method: str,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> PendingRequest:
        """Send a request and register it as pending.

        The entry is registered before the request is written so that a
        response racing the write is still matched.

        Returns:
            The pending entry; await ``entry.future`` for the result
        """
        loop = asyncio.get_running_loop()
        timeout = self.timeout if timeout is None else timeout
        request_id = self._allocate_id()

        pending = PendingRequest(id=request_id, method=method, future=loop.create_future())
        pending.deadline = pending.created_at + timeout
        pending.timer = loop.call_later(timeout, self._expire, request_id)
        self._pending[request_id] = pending

        try:
            await self._send(make_request(request_id, method, params))
        except BaseException:
            self._discard(request_id)
            raise

        logger.debug(f"Issued request {request_id}: {method}")
        return pending

    async def request(
        self,
        method: str,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and wait for its result."""
        pending = await self.issue(method, params, timeout)
        try:
            return await pending.future
        except asyncio.CancelledError:
            self._discard(pending.id)
            raise

    def resolve(self, response: JSONRPCResponse) -> bool:
        """Route a response to the caller waiting on its id.

        Responses for unknown or already-resolved ids are logged and
        ignored.

        Returns:
            True if a pending request was resolved
        """
        pending = self._pending.pop(response.id, None)
        if pending is None:
            logger.warning(f"Received response for unknown request id: {response.id!r}")
            return False

        pending.cancel_timer()
        if pending.future.done():
            return False

        if response.error is not None:
            pending.future.set_exception(
                RemoteError(response.error.code, response.error.message, response.error.data)
            )
        else:
            pending.future.set_result(response.result)
        return True

    def cancel_all(self, exc: Optional[BaseException] = None):
        """Fail every pending request, e.g. when the connection closes."""
        if exc is None:
            exc = TransportClosedError("Connection closed")
        pending_requests = list(self._pending.values())
        self._pending.clear()
        for pending in pending_requests:
            pending.cancel_timer()
            if not pending.future.done():
                pending.future.set_exception(exc)
        if pending_requests:
            logger.info(f"Cancelled {len(pending_requests)} pending requests: {exc}")

    def _expire(self, request_id: RequestId):
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        pending.timer = None
        elapsed = time.monotonic() - pending.created_at
        logger.warning(f"Request {request_id} ({pending.method}) timed out after {elapsed:.1f}s")
        if not pending.future.done():
            pending.future.set_exception(
                RequestTimeoutError(f"Request {request_id} ({pending.method}) timed out")
            )

    def _discard(self, request_id: RequestId):
        pending = self._pending.pop(request_id, None)
        if pending is not None:
            pending.cancel_timer()
            if not pending.future.done():
                pending.future.cancel()
