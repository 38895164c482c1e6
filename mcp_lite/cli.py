"""Command-line entry point."""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from . import __version__
from .config import ServerConfig
from .server import run
from .utils.errors import TransportError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-lite-server",
        description="MCP server exposing a calculator tool over stdio or HTTP+SSE",
    )
    parser.add_argument(
        "--transport",
        "-t",
        choices=["stdio", "sse"],
        help="Transport to serve on (default: stdio, env MCP_TRANSPORT)",
    )
    parser.add_argument("--host", help="Interface for the sse transport (default: localhost)")
    parser.add_argument("--port", "-p", type=int, help="Port for the sse transport (default: 5000)")
    parser.add_argument("--endpoint", help="Path of the SSE endpoint (default: /sse)")
    parser.add_argument(
        "--no-cors",
        dest="cors",
        action="store_false",
        default=None,
        help="Disable CORS headers on the sse transport",
    )
    parser.add_argument(
        "--no-session-fallback",
        dest="allow_session_fallback",
        action="store_false",
        default=None,
        help="Require a session id on every submission",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"mcp-lite-server {__version__}",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the MCP server.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)

    try:
        config = ServerConfig.from_env(
            transport=args.transport,
            host=args.host,
            port=args.port,
            endpoint=args.endpoint,
            cors=args.cors,
            allow_session_fallback=args.allow_session_fallback,
            log_level=args.log_level,
        )
    except (ValidationError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    # stdout carries protocol frames on the stdio transport
    logging.basicConfig(
        level=config.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 130
    except TransportError as e:
        logger.error(f"Failed to start server: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
