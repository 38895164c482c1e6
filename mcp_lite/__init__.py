"""Lightweight MCP server and client over stdio and HTTP+SSE."""

__version__ = "0.1.0"
