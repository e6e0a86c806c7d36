"""JSON utilities for values the default encoder rejects."""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class CustomJSONEncoder(json.JSONEncoder):
    """JSON encoder handling Decimal prices, dates and enums."""
    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def custom_json_dumps(obj: Any) -> str:
    return json.dumps(obj, cls=CustomJSONEncoder)
