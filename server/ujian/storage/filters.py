"""
Filter matching shared by both backends.

``{field: value}`` is equality, ``{field: [a, b]}`` is membership, and a
scalar value against a list-valued field means "list contains value".
"""
import enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

Filters = Optional[Dict[str, Any]]

MULTI_VALUE_TYPES = (list, tuple, set, frozenset)


def plain(value: Any) -> Any:
    """Convert enums and pydantic models into values a column can hold."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, MULTI_VALUE_TYPES):
        return [plain(v) for v in value]
    if isinstance(value, dict):
        return {k: plain(v) for k, v in value.items()}
    return value


def matches(document: Dict[str, Any], filters: Filters) -> bool:
    for field, expected in (filters or {}).items():
        actual = plain(document.get(field))
        expected = plain(expected)
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif isinstance(expected, list):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True
