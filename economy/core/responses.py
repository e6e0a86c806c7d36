"""Custom response classes for the application."""

from typing import Any
from fastapi.responses import JSONResponse
from economy.core.json_utils import custom_json_dumps


class DecimalJSONResponse(JSONResponse):
    """JSONResponse that renders Decimal, date and Enum values."""
    def render(self, content: Any) -> bytes:
        return custom_json_dumps(content).encode('utf-8')
