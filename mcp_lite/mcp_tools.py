"""MCP tool registry with tool registration and execution."""
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from .utils.errors import ToolExecutionError, ToolNotFoundError

logger = logging.getLogger(__name__)


class ToolSchema(BaseModel):
    name: str
    description: str
    inputSchema: Dict[str, Any]


def text_content(text: str, is_error: bool = False) -> Dict[str, Any]:
    """Build a tool result holding a single text block."""
    result: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


class ToolRegistry:
    """Registry of the tools exposed through tools/list and tools/call."""

    def __init__(self):
        self.tools: Dict[str, Callable] = {}
        self.tool_schemas: Dict[str, ToolSchema] = {}

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def register_tool(
        self, name: str, description: str, input_schema: Dict[str, Any], handler: Callable
    ) -> None:
        """Register an MCP tool."""
        self.tools[name] = handler
        self.tool_schemas[name] = ToolSchema(
            name=name, description=description, inputSchema=input_schema
        )
        logger.info(f"Registered tool: {name}")

    def list_tools(self) -> List[Dict[str, Any]]:
        """List all registered tools."""
        return [schema.model_dump() for schema in self.tool_schemas.values()]

    async def invoke(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a registered tool and normalize its result.

        Args:
            name: Tool name
            arguments: Keyword arguments passed to the tool handler

        Returns:
            Tool result with a ``content`` list (and ``isError`` on failure)

        Raises:
            ToolNotFoundError: If no tool is registered under ``name``
            ToolExecutionError: If the arguments do not fit the handler
        """
        handler = self.tools.get(name)
        if handler is None:
            raise ToolNotFoundError(f"Tool {name} not found")

        try:
            result = handler(**(arguments or {}))
        except TypeError as e:
            raise ToolExecutionError(f"Invalid arguments for tool {name}: {e}")
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, dict) and "content" in result:
            return result
        if isinstance(result, str):
            return text_content(result)
        return text_content(json.dumps(result, indent=2, default=str))
