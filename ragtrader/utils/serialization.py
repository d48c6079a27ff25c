"""JSON encoding of model objects for prompts and API replies"""

import json
from typing import Any, Optional


def json_default(obj: Any) -> Any:
    """``json.dumps`` fallback: ``to_dict()`` where available, else ``str()``."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return str(obj)


def dump(value: Any, indent: Optional[int] = 2) -> str:
    return json.dumps(value, indent=indent, default=json_default)
