"""
Shared helpers: cursor pagination and rate calculations.
"""
import base64
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query

import config


def encode_cursor(created_at: datetime, row_id: int) -> str:
    """Opaque cursor for the row at (created_at, id)."""
    raw = f"{created_at.isoformat()}|{row_id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[datetime, int]:
    """
    Decode a cursor produced by encode_cursor.

    Raises:
        ValueError: If the cursor is malformed
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        created_part, id_part = raw.split("|", 1)
        return datetime.fromisoformat(created_part), int(id_part)
    except (UnicodeError, ValueError, TypeError) as e:
        raise ValueError("Invalid cursor") from e


def clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit < 1:
        return config.DEFAULT_PAGE_SIZE
    return min(limit, config.MAX_PAGE_SIZE)


def paginate(query: Query, model, cursor: Optional[str], limit: Optional[int]) -> Tuple[List[Any], Optional[str], bool]:
    """
    Newest-first keyset pagination over (created_at, id).

    Args:
        query: Filtered query over model
        model: Mapped class with created_at and id columns
        cursor: Cursor returned by the previous page (None for the first page)
        limit: Page size

    Returns:
        Tuple of (items, next_cursor, has_more)
    """
    limit = clamp_limit(limit)
    if cursor:
        created_at, row_id = decode_cursor(cursor)
        query = query.filter(
            or_(
                model.created_at < created_at,
                and_(model.created_at == created_at, model.id < row_id),
            )
        )
    rows = query.order_by(model.created_at.desc(), model.id.desc()).limit(limit + 1).all()
    has_more = len(rows) > limit
    items = rows[:limit]
    next_cursor = encode_cursor(items[-1].created_at, items[-1].id) if has_more and items else None
    return items, next_cursor, has_more


def page_response(
    items: List[Any],
    next_cursor: Optional[str],
    has_more: bool,
    limit: Optional[int],
    serializer: Callable[[Any], Dict[str, Any]],
) -> Dict[str, Any]:
    return {
        "docs": [serializer(item) for item in items],
        "nextCursor": next_cursor,
        "hasMore": has_more,
        "limit": clamp_limit(limit),
    }


def percentage(part: int, whole: int) -> float:
    """part/whole as a percentage, 0 when whole is 0."""
    if whole <= 0:
        return 0.0
    return (part / whole) * 100


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
