"""Basic math calculator tool."""
import logging
import operator
from typing import Any, Dict, Optional, Union

from ..mcp_tools import text_content

logger = logging.getLogger(__name__)

Number = Union[int, float]

OPERATIONS = {
    "add": operator.add,
    "subtract": operator.sub,
    "multiply": operator.mul,
    "divide": operator.truediv,
}

CALCULATOR_TOOL: Dict[str, Any] = {
    "name": "calculator",
    "description": "Performs basic math operations",
    "input_schema": {
        "type": "object",
        "properties": {
            "operation": {
                "type": "string",
                "enum": list(OPERATIONS),
            },
            "a": {"type": "number"},
            "b": {"type": "number"},
        },
        "required": ["operation", "a", "b"],
    },
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_number(value: Number) -> str:
    """Render integral floats without a trailing ``.0``."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


async def calculate(
    operation: Optional[str] = None,
    a: Optional[Number] = None,
    b: Optional[Number] = None,
    **kwargs,
) -> Dict[str, Any]:
    """Apply ``operation`` to ``a`` and ``b``.

    Bad input is reported as an error result, never raised.
    """
    if not operation or not _is_number(a) or not _is_number(b):
        return text_content("Invalid arguments. Please provide operation, a, and b.", is_error=True)

    func = OPERATIONS.get(operation)
    if func is None:
        return text_content(f"Unsupported operation: {operation}", is_error=True)
    if operation == "divide" and b == 0:
        return text_content("Cannot divide by zero", is_error=True)

    try:
        result = func(a, b)
    except (ArithmeticError, ValueError) as e:
        logger.error(f"Calculator failed: {e}")
        return text_content(f"Error executing calculator: {e}", is_error=True)

    return text_content(
        f"Result of {format_number(a)} {operation} {format_number(b)} = {format_number(result)}"
    )
