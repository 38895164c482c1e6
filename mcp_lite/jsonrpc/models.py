"""JSON-RPC 2.0 request/response models and message classification."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union, Literal

from pydantic import BaseModel, ValidationError

from ..utils.errors import ErrorCode
from ..utils.validation import is_valid_request_id

JSONRPC_VERSION = "2.0"

RequestId = Union[str, int]


class JSONRPCRequest(BaseModel):
    """JSON-RPC 2.0 request model."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Optional[dict] = None
    id: RequestId

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class JSONRPCNotification(BaseModel):
    """JSON-RPC 2.0 notification model (a request without an id)."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Optional[dict] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class JSONRPCError(BaseModel):
    """JSON-RPC 2.0 error model."""

    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCResponse(BaseModel):
    """JSON-RPC 2.0 response model."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: Optional[RequestId]
    result: Optional[Any] = None
    error: Optional[JSONRPCError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the exact envelope shape.

        ``id`` is always present (``null`` when unknown) and a success
        response always carries ``result``.
        """
        data = self.model_dump(exclude_none=True)
        data["id"] = self.id
        if self.error is None:
            data["result"] = self.result if self.result is not None else {}
        return data

    @classmethod
    def success(cls, id: Optional[RequestId], result: Any) -> "JSONRPCResponse":
        return cls(id=id, result=result if result is not None else {})

    @classmethod
    def failure(
        cls,
        id: Optional[RequestId],
        code: int,
        message: str,
        data: Optional[Any] = None,
    ) -> "JSONRPCResponse":
        return cls(id=id, error=JSONRPCError(code=code, message=message, data=data))


class MessageKind(str, Enum):
    """Variants of the JSON-RPC message union."""

    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    INVALID = "invalid"


@dataclass
class ClassifiedMessage:
    """Result of classifying one decoded message.

    ``message`` holds the validated model for the three valid kinds and is
    ``None`` for ``INVALID``. ``has_id`` distinguishes a missing id from an
    explicit ``null`` one.
    """

    kind: MessageKind
    raw: Any
    message: Optional[Union[JSONRPCRequest, JSONRPCResponse, JSONRPCNotification]] = None
    id: Optional[Any] = None
    has_id: bool = False
    reason: str = ""


def classify_message(raw: Any) -> ClassifiedMessage:
    """Classify a decoded JSON value into the message union.

    Rules, applied on field presence:
        method and id         -> request
        method without id     -> notification
        id with result/error  -> response
        anything else         -> invalid

    A wrong ``jsonrpc`` version or a shape that fails model validation is
    invalid as well.
    """
    if not isinstance(raw, dict):
        return ClassifiedMessage(
            kind=MessageKind.INVALID, raw=raw, reason="Message is not a JSON object"
        )

    has_id = "id" in raw
    msg_id = raw.get("id")

    def invalid(reason: str) -> ClassifiedMessage:
        return ClassifiedMessage(
            kind=MessageKind.INVALID, raw=raw, id=msg_id, has_id=has_id, reason=reason
        )

    if raw.get("jsonrpc") != JSONRPC_VERSION:
        return invalid("Not a valid JSON-RPC 2.0 message")

    try:
        if "method" in raw and has_id:
            if not is_valid_request_id(msg_id):
                return invalid("Request id must be a string or integer")
            return ClassifiedMessage(
                kind=MessageKind.REQUEST,
                raw=raw,
                message=JSONRPCRequest.model_validate(raw),
                id=msg_id,
                has_id=True,
            )
        if "method" in raw:
            return ClassifiedMessage(
                kind=MessageKind.NOTIFICATION,
                raw=raw,
                message=JSONRPCNotification.model_validate(raw),
            )
        if has_id and ("result" in raw or "error" in raw):
            return ClassifiedMessage(
                kind=MessageKind.RESPONSE,
                raw=raw,
                message=JSONRPCResponse.model_validate(raw),
                id=msg_id,
                has_id=True,
            )
    except ValidationError as e:
        return invalid(f"Invalid message shape: {e.error_count()} validation error(s)")

    return invalid("Message is neither a request, a response nor a notification")


def make_request(id: RequestId, method: str, params: Optional[dict] = None) -> Dict[str, Any]:
    return JSONRPCRequest(id=id, method=method, params=params).to_wire()


def make_notification(method: str, params: Optional[dict] = None) -> Dict[str, Any]:
    return JSONRPCNotification(method=method, params=params).to_wire()


def make_error(
    id: Optional[RequestId], code: int, message: str, data: Optional[Any] = None
) -> Dict[str, Any]:
    return JSONRPCResponse.failure(id, code, message, data).to_wire()


__all__ = [
    "ClassifiedMessage",
    "ErrorCode",
    "JSONRPCError",
    "JSONRPCNotification",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPC_VERSION",
    "MessageKind",
    "RequestId",
    "classify_message",
    "make_error",
    "make_notification",
    "make_request",
]
