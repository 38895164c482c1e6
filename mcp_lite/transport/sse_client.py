"""Client side of the HTTP+SSE transport."""
import asyncio
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin, urlparse

import httpx
from httpx_sse import aconnect_sse

from ..utils.errors import DeliveryError, TransportError, TransportFrameError
from .base import Transport
from .sse import SESSION_HEADER

logger = logging.getLogger(__name__)


class SseClientTransport(Transport):
    """Connects to an HTTP+SSE server.

    Opens the SSE stream, waits for the ``endpoint`` event announcing where
    to POST, then delivers every ``message`` event to the listeners.
    """

    def __init__(
        self,
        url: str,
        session_id: Optional[str] = None,
        timeout: float = 30.0,
        sse_read_timeout: float = 60 * 5,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the transport.

        Args:
            url: SSE endpoint URL (e.g., http://localhost:5000/sse)
            session_id: Session id to request, a new one is assigned if None
            timeout: Request timeout in seconds
            sse_read_timeout: How long to wait for the next SSE event
            headers: Extra HTTP headers
            client: Preconfigured httpx client (closed by the caller)
        """
        super().__init__()
        self.url = url
        self.session_id = session_id
        self.timeout = timeout
        self.sse_read_timeout = sse_read_timeout
        self.headers = dict(headers or {})
        if session_id:
            self.headers[SESSION_HEADER] = session_id
        self._client = client
        self._owns_client = client is None
        self.endpoint_url: Optional[str] = None
        self._endpoint_ready: Optional[asyncio.Future] = None
        self._reader_task: Optional[asyncio.Task] = None

    async def _start(self):
        if self._client is None:
            self._client = httpx.AsyncClient(headers=self.headers, timeout=self.timeout)

        self._endpoint_ready = asyncio.get_running_loop().create_future()
        self._reader_task = asyncio.create_task(self._read_stream())
        try:
            self.endpoint_url = await asyncio.wait_for(self._endpoint_ready, timeout=self.timeout)
        except (asyncio.TimeoutError, OSError, httpx.HTTPError, TransportError) as e:
            await self._shutdown_reader()
            raise TransportError(f"Failed to connect to {self.url}: {e}")
        logger.info(f"Received endpoint URL: {self.endpoint_url}")

    async def _read_stream(self):
        try:
            logger.info(f"Connecting to SSE endpoint: {self.url}")
            async with aconnect_sse(
                self._client,
                "GET",
                self.url,
                timeout=httpx.Timeout(self.timeout, read=self.sse_read_timeout),
            ) as event_source:
                event_source.response.raise_for_status()
                self.session_id = event_source.response.headers.get(SESSION_HEADER, self.session_id)
                logger.debug("SSE connection established")

                async for sse in event_source.aiter_sse():
                    if sse.event == "endpoint":
                        self._set_endpoint(sse.data)
                    elif sse.event == "message":
                        await self._handle_event_data(sse.data)
                    else:
                        logger.warning(f"Unknown SSE event: {sse.event}")
        except asyncio.CancelledError:
            raise
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"SSE connection error: {e}")
            if self._endpoint_ready is not None and not self._endpoint_ready.done():
                self._endpoint_ready.set_exception(e)
            else:
                await self._emit_error(e)

        if self._endpoint_ready is not None and not self._endpoint_ready.done():
            self._endpoint_ready.set_exception(TransportError("SSE stream ended before endpoint event"))
        if not self._closed:
            self._reader_task = None
            await self.close()

    def _set_endpoint(self, data: str):
        endpoint_url = urljoin(self.url, data)
        url_parsed = urlparse(self.url)
        endpoint_parsed = urlparse(endpoint_url)
        if (url_parsed.netloc, url_parsed.scheme) != (endpoint_parsed.netloc, endpoint_parsed.scheme):
            error = TransportError(f"Endpoint origin does not match connection origin: {endpoint_url}")
            logger.error(str(error))
            if not self._endpoint_ready.done():
                self._endpoint_ready.set_exception(error)
            return
        if not self._endpoint_ready.done():
            self._endpoint_ready.set_result(endpoint_url)

    async def _handle_event_data(self, data: str):
        try:
            message = json.loads(data)
        except json.JSONDecodeError as e:
            error = TransportFrameError(f"Failed to parse JSON: {e}", frame=data.encode("utf-8"))
            logger.error(f"Error parsing server message: {error}")
            await self._emit_error(error)
            return
        await self._emit_message(message)

    async def send(self, message: Dict[str, Any], session_id: Optional[str] = None) -> None:
        """POST one message to the announced endpoint.

        Raises:
            DeliveryError: If not connected or the server rejected the message
        """
        if self.endpoint_url is None or self._closed:
            raise DeliveryError("Cannot send message: transport not connected")
        try:
            response = await self._client.post(self.endpoint_url, json=message)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Failed to send message: {e}")

    async def _shutdown_reader(self):
        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"SSE reader ended with error: {e}")

    async def _close(self):
        await self._shutdown_reader()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
