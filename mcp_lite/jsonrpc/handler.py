"""JSON-RPC 2.0 request handler."""
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..utils.errors import HandlerExecutionError, MCPError, MethodNotFoundError
from .models import (
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
)

logger = logging.getLogger(__name__)

MethodHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class JSONRPCHandler:
    """Handles JSON-RPC 2.0 requests and routes to registered methods.

    Acts as the handler registry of one engine: method names map to
    callables taking the params object. Handlers may be plain functions or
    coroutines. Registering a name twice replaces the earlier handler.
    """

    def __init__(self):
        self.methods: Dict[str, MethodHandler] = {}

    def register_method(self, method_name: str, handler: MethodHandler):
        """Register a JSON-RPC method handler.

        Args:
            method_name: Name of the JSON-RPC method (e.g., "tools/list")
            handler: Callable that handles the method
        """
        if method_name in self.methods:
            logger.debug(f"Replacing handler for JSON-RPC method: {method_name}")
        self.methods[method_name] = handler
        logger.info(f"Registered JSON-RPC method: {method_name}")

    def unregister_method(self, method_name: str) -> bool:
        return self.methods.pop(method_name, None) is not None

    def __contains__(self, method_name: str) -> bool:
        return method_name in self.methods

    async def _invoke(self, handler: MethodHandler, params: Optional[dict]) -> Any:
        result = handler(params or {})
        if inspect.isawaitable(result):
            result = await result
        return result

    async def handle_request(
        self,
        request: JSONRPCRequest
    ) -> JSONRPCResponse:
        """Handle a JSON-RPC 2.0 request.

        Args:
            request: JSONRPCRequest object

        Returns:
            JSONRPCResponse with result or error
        """
        try:
            handler = self.methods.get(request.method)
            if handler is None:
                raise MethodNotFoundError(f"Method not found: {request.method}")
            result = await self._invoke(handler, request.params)
            return JSONRPCResponse.success(request.id, result)

        except MCPError as e:
            # Raised with a specific error code
            logger.warning(f"Error handling request {request.method}: {e}")
            return JSONRPCResponse.failure(
                request.id, e.code, str(e) or "Internal error", e.data
            )
        except Exception as e:
            logger.error(f"Error handling request {request.method}: {e}", exc_info=True)
            error = HandlerExecutionError(str(e) or "Internal error")
            return JSONRPCResponse.failure(request.id, error.code, str(error))

    async def handle_notification(self, notification: JSONRPCNotification) -> bool:
        """Deliver a notification to its handler, if any.

        Notifications never produce a reply, so failures are logged and
        swallowed here.

        Returns:
            True if a handler ran to completion
        """
        handler = self.methods.get(notification.method)
        if handler is None:
            logger.info(f"No handler for notification {notification.method}, discarding")
            return False

        try:
            await self._invoke(handler, notification.params)
            return True
        except Exception as e:
            logger.error(
                f"Error handling notification {notification.method}: {e}", exc_info=True
            )
            return False
