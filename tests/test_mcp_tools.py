"""Unit tests for the tool registry and the calculator tool."""
import pytest

from mcp_lite.mcp_tools import ToolRegistry, ToolSchema
from mcp_lite.server import create_engine, register_all_tools
from mcp_lite.tools.calculator import calculate, format_number
from mcp_lite.utils.errors import ToolNotFoundError

from .helpers import FakeTransport


@pytest.fixture
def registry():
    """Create ToolRegistry instance for testing."""
    return ToolRegistry()


class TestToolRegistration:
    """Test tool registration functionality."""

    def test_register_single_tool(self, registry):
        """Test registering a single tool."""
        async def handler(name: str, value: int) -> dict:
            return {"name": name, "value": value}

        registry.register_tool(
            name="sample_tool",
            description="A sample tool for testing",
            input_schema={"type": "object", "properties": {"name": {"type": "string"}}},
            handler=handler
        )

        assert "sample_tool" in registry
        assert isinstance(registry.tool_schemas["sample_tool"], ToolSchema)
        assert registry.list_tools() == [{
            "name": "sample_tool",
            "description": "A sample tool for testing",
            "inputSchema": {"type": "object", "properties": {"name": {"type": "string"}}},
        }]

    def test_register_tool_overwrites_existing(self, registry):
        """Test that registering a tool with the same name overwrites."""
        registry.register_tool("tool", "First", {"type": "object"}, lambda: "one")
        registry.register_tool("tool", "Second", {"type": "object"}, lambda: "two")

        assert len(registry.list_tools()) == 1
        assert registry.tool_schemas["tool"].description == "Second"

    def test_calculator_registered(self, registry):
        """Test the built-in tools are registered."""
        register_all_tools(registry)

        tools = registry.list_tools()
        assert [t["name"] for t in tools] == ["calculator"]
        assert tools[0]["inputSchema"]["required"] == ["operation", "a", "b"]


class TestToolInvocation:
    """Test tool execution and result normalization."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry):
        """Test invoking a missing tool raises ToolNotFoundError."""
        with pytest.raises(ToolNotFoundError) as exc_info:
            await registry.invoke("missing", {})
        assert str(exc_info.value) == "Tool missing not found"

    @pytest.mark.asyncio
    async def test_string_result_wrapped(self, registry):
        """Test a plain string becomes a text content block."""
        async def greet(name: str):
            return f"hello {name}"

        registry.register_tool("greet", "Greets", {"type": "object"}, greet)

        result = await registry.invoke("greet", {"name": "bob"})

        assert result == {"content": [{"type": "text", "text": "hello bob"}]}

    @pytest.mark.asyncio
    async def test_structured_result_serialized(self, registry):
        """Test other results are serialized as JSON text."""
        registry.register_tool("data", "Data", {"type": "object"}, lambda: {"rows": [1, 2]})

        result = await registry.invoke("data")

        assert result["content"][0]["type"] == "text"
        assert '"rows"' in result["content"][0]["text"]


class TestCalculator:
    """Test the calculator tool."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation,a,b,expected", [
        ("add", 2, 3, "Result of 2 add 3 = 5"),
        ("subtract", 10, 4, "Result of 10 subtract 4 = 6"),
        ("multiply", 2.5, 4, "Result of 2.5 multiply 4 = 10"),
        ("divide", 7, 2, "Result of 7 divide 2 = 3.5"),
        ("divide", 6, 3, "Result of 6 divide 3 = 2"),
    ])
    async def test_operations(self, operation, a, b, expected):
        """Test each supported operation."""
        result = await calculate(operation=operation, a=a, b=b)

        assert "isError" not in result
        assert result["content"][0]["text"] == expected

    @pytest.mark.asyncio
    async def test_divide_by_zero(self):
        """Test division by zero is an error result."""
        result = await calculate(operation="divide", a=1, b=0)

        assert result["isError"] is True
        assert result["content"][0]["text"] == "Cannot divide by zero"

    @pytest.mark.asyncio
    async def test_unsupported_operation(self):
        """Test an unknown operation is an error result."""
        result = await calculate(operation="modulo", a=1, b=2)

        assert result["isError"] is True
        assert result["content"][0]["text"] == "Unsupported operation: modulo"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self):
        """Test missing or non-numeric operands are an error result."""
        for kwargs in ({}, {"operation": "add", "a": "1", "b": 2}, {"operation": "add", "a": True, "b": 2}):
            result = await calculate(**kwargs)
            assert result["isError"] is True
            assert result["content"][0]["text"].startswith("Invalid arguments")

    def test_format_number(self):
        """Test integral floats are shown without a fraction."""
        assert format_number(3.0) == "3"
        assert format_number(0.5) == "0.5"
        assert format_number(4) == "4"


class TestToolMethods:
    """Test tools/list and tools/call through the engine."""

    @pytest.mark.asyncio
    async def test_tools_list(self):
        """Test tools/list returns the registered tools."""
        engine = create_engine()
        transport = FakeTransport()
        await engine.connect(transport)

        await transport.deliver({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        await engine.wait_for_pending_tasks()

        tools = transport.messages()[0]["result"]["tools"]
        assert tools[0]["name"] == "calculator"

    @pytest.mark.asyncio
    async def test_tools_call_divide_by_zero(self):
        """Test a tool error is a successful response with isError set."""
        engine = create_engine()
        transport = FakeTransport()
        await engine.connect(transport)

        await transport.deliver({
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {"name": "calculator", "arguments": {"operation": "divide", "a": 1, "b": 0}},
        })
        await engine.wait_for_pending_tasks()

        response = transport.messages()[0]
        assert "error" not in response
        assert response["result"]["isError"] is True
        assert response["result"]["content"][0]["text"] == "Cannot divide by zero"

    @pytest.mark.asyncio
    async def test_tools_call_unknown_tool(self):
        """Test calling an unknown tool is an internal error."""
        engine = create_engine()
        transport = FakeTransport()
        await engine.connect(transport)

        await transport.deliver({
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": "weather", "arguments": {}},
        })
        await engine.wait_for_pending_tasks()

        error = transport.messages()[0]["error"]
        assert error["code"] == -32603
        assert error["message"] == "Tool weather not found"

    @pytest.mark.asyncio
    async def test_initialize_advertises_tools(self):
        """Test the server capabilities and instructions."""
        engine = create_engine()
        transport = FakeTransport()
        await engine.connect(transport)

        await transport.deliver({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {"protocolVersion": "2024-11-05", "capabilities": {}},
        })
        await engine.wait_for_pending_tasks()

        result = transport.messages()[0]["result"]
        assert result["capabilities"] == {"tools": {"listChanged": True}}
        assert result["serverInfo"]["name"] == "mcp-lite-server"
        assert "calculator" in result["instructions"]
