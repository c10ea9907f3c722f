# flowmend/structural/schema.py
from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict

from jsonschema import Draft7Validator

# Layout coordinates as exported by the editor: exactly [x, y]
POSITION_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {"type": "number"},
    "minItems": 2,
    "maxItems": 2,
}

# Input slot index on the destination node
EDGE_INDEX_SCHEMA: Dict[str, Any] = {
    "type": "integer",
    "minimum": 0,
}


@lru_cache(maxsize=None)
def _validator(key: str) -> Draft7Validator:
    return Draft7Validator(_SCHEMAS[key])


_SCHEMAS = {
    "position": POSITION_SCHEMA,
    "edge_index": EDGE_INDEX_SCHEMA,
}


def conforms(instance: Any, schema_key: str) -> bool:
    """True when `instance` satisfies the named schema fragment."""
    return _validator(schema_key).is_valid(instance)
