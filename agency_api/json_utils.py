"""
Key-case conversion between stored documents (camelCase) and records (snake_case).
"""

from __future__ import annotations

import re
from typing import Any

# Keys whose camelCase spelling is not derivable from the snake_case one.
_SNAKE_TO_CAMEL_OVERRIDES = {
    "photo_url": "photoURL",
}
_CAMEL_TO_SNAKE_OVERRIDES = {v: k for k, v in _SNAKE_TO_CAMEL_OVERRIDES.items()}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _snake_to_camel(key: str) -> str:
    if key in _SNAKE_TO_CAMEL_OVERRIDES:
        return _SNAKE_TO_CAMEL_OVERRIDES[key]
    if key.startswith("_"):
        return key
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _camel_to_snake(key: str) -> str:
    if key in _CAMEL_TO_SNAKE_OVERRIDES:
        return _CAMEL_TO_SNAKE_OVERRIDES[key]
    if key.startswith("_"):
        return key
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def convert_keys(data: Any, direction: str) -> Any:
    """
    Recursively convert dict keys.

    Args:
        data: A dict, list or scalar.
        direction: "snake_to_camel" or "camel_to_snake".
    """
    if direction == "snake_to_camel":
        convert = _snake_to_camel
    elif direction == "camel_to_snake":
        convert = _camel_to_snake
    else:
        raise ValueError(f"Unknown direction: {direction}")

    if isinstance(data, dict):
        return {
            convert(key) if isinstance(key, str) else key: convert_keys(value, direction)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item, direction) for item in data]
    return data
