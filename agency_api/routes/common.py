"""
Helpers shared by the route modules.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from agency_api.json_utils import convert_keys
from agency_api.models import to_document
from agency_api.schemas import ApiResponse, Pagination


def present(record: Any) -> dict:
    """Render a stored record in its wire shape (camelCase with ``_id``)."""
    return to_document(record)


def present_all(records: Iterable[Any]) -> List[dict]:
    return [present(record) for record in records]


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def camel(summary: Any) -> dict:
    """Render a computed (non-stored) dataclass with camelCase keys."""
    return convert_keys(_plain(asdict(summary)), "snake_to_camel")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def respond(data: Any = None, message: Optional[str] = None, **extra: Any) -> ApiResponse:
    return ApiResponse(success=True, data=data, message=message, **extra)


def page(skip: int, limit: int, returned: int, total: int) -> Pagination:
    return Pagination(skip=skip, limit=limit, has_more=skip + returned < total)
