"""MCP server wiring: engine, tools and transport."""
import logging
from typing import Any, Dict, Optional

from .config import ServerConfig
from .jsonrpc.handler import JSONRPCHandler
from .mcp_engine import EngineOptions, ProtocolEngine
from .mcp_tools import ToolRegistry
from .tools.calculator import CALCULATOR_TOOL, calculate
from .transport.base import Transport
from .transport.sse import SseTransport
from .transport.stdio import StdioTransport
from .utils.errors import InvalidParamsError

logger = logging.getLogger(__name__)


def register_all_tools(tools: ToolRegistry):
    """Register all MCP tools."""

    # Tool 1: calculator
    tools.register_tool(
        name=CALCULATOR_TOOL["name"],
        description=CALCULATOR_TOOL["description"],
        input_schema=CALCULATOR_TOOL["input_schema"],
        handler=calculate,
    )


def register_jsonrpc_methods(handler: JSONRPCHandler, tools: ToolRegistry):
    """Register the tool methods on a JSON-RPC handler."""

    # Method: tools/list
    async def tools_list(params: dict) -> Dict[str, Any]:
        return {"tools": tools.list_tools()}

    # Method: tools/call
    async def tools_call(params: dict) -> Dict[str, Any]:
        tool_name = params.get("name")
        if not isinstance(tool_name, str):
            raise InvalidParamsError("Missing tool name")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("Tool arguments must be an object")
        # ToolNotFoundError surfaces as -32603 "Tool <name> not found"
        return await tools.invoke(tool_name, arguments)

    handler.register_method("tools/list", tools_list)
    handler.register_method("tools/call", tools_call)


def create_engine(config: Optional[ServerConfig] = None, tools: Optional[ToolRegistry] = None) -> ProtocolEngine:
    """Build a protocol engine with the tool methods registered."""
    config = config or ServerConfig()
    if tools is None:
        tools = ToolRegistry()
        register_all_tools(tools)

    options = EngineOptions(
        server_info={"name": config.server_name, "version": config.server_version},
        capabilities={"tools": {"listChanged": True}},
        instructions=config.instructions,
        request_timeout=config.request_timeout,
    )
    engine = ProtocolEngine(options)
    register_jsonrpc_methods(engine.handler, tools)
    return engine


def create_transport(config: ServerConfig) -> Transport:
    """Build the transport selected by the config."""
    if config.transport == "sse":
        return SseTransport(
            host=config.host,
            port=config.port,
            endpoint=config.endpoint,
            cors=config.cors,
            keepalive_interval=config.keepalive_interval,
            allow_session_fallback=config.allow_session_fallback,
            session_timeout_minutes=config.session_timeout_minutes,
            service_name=config.server_name,
            log_level=config.log_level.lower(),
        )
    return StdioTransport()


async def run(config: ServerConfig):
    """Serve until the input ends or the transport closes."""
    engine = create_engine(config)
    transport = create_transport(config)
    await engine.connect(transport)
    logger.info(f"{config.server_name} {config.server_version} running on {config.transport}")
    try:
        await transport.wait_input_closed()
        # Answer every request already read before the output is closed
        await engine.wait_for_pending_tasks()
    finally:
        await engine.close()
        logger.info("Server stopped")
