"""Unit tests for JSON-RPC models, classification and handler."""
import pytest

from mcp_lite.jsonrpc.handler import JSONRPCHandler
from mcp_lite.jsonrpc.models import (
    ErrorCode,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    MessageKind,
    classify_message,
    make_error,
)
from mcp_lite.utils.errors import InvalidParamsError


class TestClassification:
    """Test central message classification."""

    def test_request(self):
        """Test method with id is a request."""
        classified = classify_message({"jsonrpc": "2.0", "id": 1, "method": "ping"})
        assert classified.kind == MessageKind.REQUEST
        assert isinstance(classified.message, JSONRPCRequest)
        assert classified.id == 1

    def test_notification(self):
        """Test method without id is a notification."""
        classified = classify_message({"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert classified.kind == MessageKind.NOTIFICATION
        assert isinstance(classified.message, JSONRPCNotification)
        assert classified.has_id is False

    def test_response_with_result(self):
        """Test id with result is a response."""
        classified = classify_message({"jsonrpc": "2.0", "id": "a", "result": {"x": 1}})
        assert classified.kind == MessageKind.RESPONSE
        assert classified.message.result == {"x": 1}

    def test_response_with_error(self):
        """Test id with error is a response."""
        classified = classify_message(
            {"jsonrpc": "2.0", "id": 7, "error": {"code": -32601, "message": "nope"}}
        )
        assert classified.kind == MessageKind.RESPONSE
        assert classified.message.is_error
        assert classified.message.error.code == -32601

    def test_wrong_version_is_invalid(self):
        """Test jsonrpc other than 2.0 is invalid but keeps its id."""
        classified = classify_message({"jsonrpc": "1.0", "id": 3, "method": "ping"})
        assert classified.kind == MessageKind.INVALID
        assert classified.has_id is True
        assert classified.id == 3

    def test_id_only_is_invalid(self):
        """Test an id without method, result or error is invalid."""
        classified = classify_message({"jsonrpc": "2.0", "id": 3})
        assert classified.kind == MessageKind.INVALID

    def test_non_object_is_invalid(self):
        """Test arrays and scalars are invalid without an id."""
        for raw in ([1, 2], "text", 42, None):
            classified = classify_message(raw)
            assert classified.kind == MessageKind.INVALID
            assert classified.has_id is False

    def test_boolean_id_is_invalid(self):
        """Test a boolean request id is rejected."""
        classified = classify_message({"jsonrpc": "2.0", "id": True, "method": "ping"})
        assert classified.kind == MessageKind.INVALID

    def test_bad_params_shape_is_invalid(self):
        """Test a shape failing model validation is invalid."""
        classified = classify_message({"jsonrpc": "2.0", "id": 1, "method": 5})
        assert classified.kind == MessageKind.INVALID
        assert classified.has_id is True


class TestEnvelopes:
    """Test wire shapes of responses."""

    def test_success_always_has_result(self):
        """Test a None result is sent as an empty object."""
        wire = JSONRPCResponse.success(1, None).to_wire()
        assert wire == {"jsonrpc": "2.0", "id": 1, "result": {}}

    def test_error_keeps_null_id(self):
        """Test an error without a known id serializes id as null."""
        wire = make_error(None, ErrorCode.PARSE_ERROR, "Parse error")
        assert wire["id"] is None
        assert wire["error"] == {"code": -32700, "message": "Parse error"}
        assert "result" not in wire


@pytest.mark.asyncio
async def test_jsonrpc_method_not_found():
    """Test that non-existent methods return METHOD_NOT_FOUND error."""
    handler = JSONRPCHandler()

    request = JSONRPCRequest(
        method="nonexistent_method",
        params={},
        id=1
    )

    response = await handler.handle_request(request)

    assert response.error is not None
    assert response.error.code == ErrorCode.METHOD_NOT_FOUND
    assert response.error.message == "Method not found: nonexistent_method"
    assert response.result is None


@pytest.mark.asyncio
async def test_jsonrpc_successful_call():
    """Test successful method execution."""
    handler = JSONRPCHandler()

    async def test_method(params):
        return {"result": "success", "input": params}

    handler.register_method("test", test_method)

    request = JSONRPCRequest(
        method="test",
        params={"key": "value"},
        id=1
    )

    response = await handler.handle_request(request)

    assert response.error is None
    assert response.result == {"result": "success", "input": {"key": "value"}}
    assert response.id == 1


@pytest.mark.asyncio
async def test_jsonrpc_sync_handler():
    """Test plain functions can be registered as handlers."""
    handler = JSONRPCHandler()
    handler.register_method("echo", lambda params: params)

    response = await handler.handle_request(JSONRPCRequest(method="echo", params={"a": 1}, id="x"))

    assert response.result == {"a": 1}
    assert response.id == "x"


@pytest.mark.asyncio
async def test_jsonrpc_invalid_params_error():
    """Test that a handler can choose its error code."""
    handler = JSONRPCHandler()

    async def error_method(params):
        raise InvalidParamsError("Invalid parameter provided")

    handler.register_method("error_test", error_method)

    response = await handler.handle_request(JSONRPCRequest(method="error_test", params={}, id=2))

    assert response.error is not None
    assert response.error.code == ErrorCode.INVALID_PARAMS
    assert "Invalid parameter" in response.error.message


@pytest.mark.asyncio
async def test_jsonrpc_internal_error():
    """Test that unexpected exceptions return INTERNAL_ERROR with their text."""
    handler = JSONRPCHandler()

    async def crash_method(params):
        raise RuntimeError("Something went wrong")

    handler.register_method("crash", crash_method)

    response = await handler.handle_request(JSONRPCRequest(method="crash", params={}, id=3))

    assert response.error is not None
    assert response.error.code == ErrorCode.INTERNAL_ERROR
    assert response.error.message == "Something went wrong"


@pytest.mark.asyncio
async def test_jsonrpc_no_params():
    """Test method call with no params (None)."""
    handler = JSONRPCHandler()

    async def no_params_method(params):
        assert params == {}
        return {"status": "ok"}

    handler.register_method("no_params", no_params_method)

    response = await handler.handle_request(JSONRPCRequest(method="no_params", params=None, id=4))

    assert response.error is None
    assert response.result == {"status": "ok"}


@pytest.mark.asyncio
async def test_jsonrpc_none_result_becomes_empty_object():
    """Test a handler returning None yields an empty result object."""
    handler = JSONRPCHandler()
    handler.register_method("noop", lambda params: None)

    response = await handler.handle_request(JSONRPCRequest(method="noop", id=5))

    assert response.to_wire()["result"] == {}


@pytest.mark.asyncio
async def test_register_replaces_handler():
    """Test the last registration for a method wins."""
    handler = JSONRPCHandler()
    handler.register_method("m", lambda params: 1)
    handler.register_method("m", lambda params: 2)

    response = await handler.handle_request(JSONRPCRequest(method="m", id=6))

    assert response.result == 2
    assert handler.unregister_method("m") is True
    assert "m" not in handler


@pytest.mark.asyncio
async def test_jsonrpc_notification():
    """Test notifications run their handler and swallow failures."""
    handler = JSONRPCHandler()
    seen = []

    async def on_note(params):
        seen.append(params)

    async def failing(params):
        raise RuntimeError("boom")

    handler.register_method("note", on_note)
    handler.register_method("fail", failing)

    assert await handler.handle_notification(JSONRPCNotification(method="note", params={"v": 1})) is True
    assert await handler.handle_notification(JSONRPCNotification(method="fail")) is False
    assert await handler.handle_notification(JSONRPCNotification(method="unknown")) is False
    assert seen == [{"v": 1}]
