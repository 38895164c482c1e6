"""Input validation utilities."""
import re
from typing import Any

VALID_SESSION_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,127}$")


def validate_session_id(session_id: str) -> bool:
    """Validate a caller-supplied session token.

    Session ids are embedded in the submission URL pushed to the client, so
    only URL-safe characters are accepted.
    """
    return bool(VALID_SESSION_ID.match(session_id))


def is_valid_request_id(value: Any) -> bool:
    """JSON-RPC ids used here are strings or integers (booleans excluded)."""
    if isinstance(value, bool):
        return False
    return isinstance(value, (str, int))
