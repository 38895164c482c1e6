"""Server configuration."""
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

from . import __version__


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ServerConfig(BaseModel):
    """Settings for one server process.

    Defaults can be overridden from ``MCP_*`` environment variables via
    :meth:`from_env`, and the command line overrides both.
    """

    transport: Literal["stdio", "sse"] = "stdio"
    host: str = "localhost"
    port: int = Field(default=5000, ge=0, le=65535)
    endpoint: str = "/sse"
    cors: bool = True
    keepalive_interval: float = Field(default=30.0, gt=0)
    allow_session_fallback: bool = True
    session_timeout_minutes: float = Field(default=30, gt=0)
    request_timeout: float = Field(default=60.0, gt=0)
    log_level: str = "INFO"
    server_name: str = "mcp-lite-server"
    server_version: str = __version__
    instructions: Optional[str] = (
        "This server provides a simple calculator tool for basic math operations."
    )

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """Build a config from the environment, then apply ``overrides``."""
        values = {
            "transport": os.getenv("MCP_TRANSPORT", "stdio"),
            "host": os.getenv("MCP_HOST", "localhost"),
            "port": int(os.getenv("MCP_PORT", "5000")),
            "endpoint": os.getenv("MCP_ENDPOINT", "/sse"),
            "cors": _env_bool("MCP_CORS", True),
            "keepalive_interval": float(os.getenv("MCP_KEEPALIVE_INTERVAL", "30")),
            "allow_session_fallback": _env_bool("MCP_SESSION_FALLBACK", True),
            "session_timeout_minutes": float(os.getenv("MCP_SESSION_TIMEOUT_MINUTES", "30")),
            "request_timeout": float(os.getenv("MCP_REQUEST_TIMEOUT", "60")),
            "log_level": os.getenv("MCP_LOG_LEVEL", "INFO"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
