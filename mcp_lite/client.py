"""MCP client for talking to an MCP server over stdio or HTTP+SSE."""
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .mcp_engine import (
    INITIALIZED_NOTIFICATION,
    LATEST_PROTOCOL_VERSION,
    EngineOptions,
    ProtocolEngine,
)
from .transport.base import Transport
from .transport.sse_client import SseClientTransport
from .transport.stdio import StdioTransport

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_INFO = {"name": "mcp-lite-client", "version": "0.1.0"}


@dataclass
class MCPTool:
    """Represents an MCP tool."""
    name: str
    description: str
    input_schema: Dict[str, Any]


class MCPClient:
    """Client side of an MCP connection.

    Wraps a protocol engine so that requests from the server (``ping``) are
    answered while the client waits on its own requests.
    """

    def __init__(
        self,
        transport: Transport,
        client_info: Optional[Dict[str, Any]] = None,
        request_timeout: float = 60.0,
        process: Optional[asyncio.subprocess.Process] = None,
    ):
        """Initialize MCP client.

        Args:
            transport: Transport connected to the server
            client_info: Name and version sent in initialize
            request_timeout: Seconds to wait for each response
            process: Server subprocess owned by this client, if any
        """
        self.transport = transport
        self.client_info = client_info or dict(DEFAULT_CLIENT_INFO)
        self.engine = ProtocolEngine(EngineOptions(request_timeout=request_timeout))
        self.tools: Dict[str, MCPTool] = {}
        self.server_info: Optional[Dict[str, Any]] = None
        self.server_capabilities: Dict[str, Any] = {}
        self.protocol_version: Optional[str] = None
        self._process = process

    @classmethod
    async def spawn(cls, command: str, *args: str, **kwargs) -> "MCPClient":
        """Start a server subprocess and connect to it over its stdio."""
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=sys.stderr,
        )
        logger.info(f"Started server process {process.pid}: {command}")
        client = cls(StdioTransport.from_process(process), process=process, **kwargs)
        await client.connect()
        return client

    @classmethod
    async def connect_sse(cls, url: str, **kwargs) -> "MCPClient":
        """Connect to an HTTP+SSE server (e.g., http://localhost:5000/sse)."""
        client = cls(SseClientTransport(url), **kwargs)
        await client.connect()
        return client

    async def connect(self):
        await self.engine.connect(self.transport)

    async def close(self):
        """Close the transport and stop the server process, if owned."""
        await self.engine.close()
        if self._process is not None and self._process.returncode is None:
            try:
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning(f"Server process {self._process.pid} did not exit, terminating")
                self._process.terminate()
                await self._process.wait()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def request(self, method: str, params: Optional[dict] = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            RequestTimeoutError: If the server did not answer in time
            RemoteError: If the server answered with an error
        """
        return await self.engine.request(method, params)

    async def notify(self, method: str, params: Optional[dict] = None):
        await self.engine.notify(method, params)

    async def initialize(
        self,
        protocol_version: str = LATEST_PROTOCOL_VERSION,
        capabilities: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Run the initialize handshake.

        Returns:
            Server capabilities and info
        """
        result = await self.request(
            "initialize",
            {
                "protocolVersion": protocol_version,
                "capabilities": capabilities or {},
                "clientInfo": self.client_info,
            },
        )
        self.protocol_version = result.get("protocolVersion")
        self.server_capabilities = result.get("capabilities") or {}
        self.server_info = result.get("serverInfo")
        if self.protocol_version != protocol_version:
            logger.warning(
                f"Server offered protocol version {self.protocol_version} instead of {protocol_version}"
            )

        await self.notify(INITIALIZED_NOTIFICATION)
        logger.info(f"Initialized session with {self.server_info}")
        return result

    async def ping(self) -> Dict[str, Any]:
        return await self.request("ping")

    async def list_tools(self) -> List[MCPTool]:
        """List all available tools from the MCP server."""
        data = await self.request("tools/list")

        tools = []
        for tool_data in data.get("tools", []):
            tool = MCPTool(
                name=tool_data["name"],
                description=tool_data.get("description", ""),
                input_schema=tool_data.get("inputSchema", {}),
            )
            tools.append(tool)
            self.tools[tool.name] = tool

        logger.info(f"Loaded {len(tools)} tools from MCP server")
        return tools

    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Call a tool on the MCP server.

        Returns:
            The tool result (``content`` list, ``isError`` when the tool failed)
        """
        result = await self.request("tools/call", {"name": tool_name, "arguments": arguments})
        if result.get("isError"):
            logger.warning(f"Tool {tool_name} reported an error")
        return result
