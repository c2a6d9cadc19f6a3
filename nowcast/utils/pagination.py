"""
Cursor-based pagination for reverse-chronological post lists.

A cursor is the base64 encoding of ``"{epochMillis}_{postId}"`` taken from the
last item of a page. Lists are ordered by ``(created_at DESC, id DESC)`` so the
id breaks ties between posts created in the same millisecond.
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_

EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class Cursor:
    created_at: datetime
    id: int


def encode_cursor(created_at: datetime, post_id: int) -> str:
    millis = (created_at - EPOCH) // timedelta(milliseconds=1)
    return base64.b64encode(f"{millis}_{post_id}".encode()).decode()


def decode_cursor(cursor: Optional[str]) -> Optional[Cursor]:
    """
    Decode a cursor produced by ``encode_cursor``.

    Anything malformed (bad base64, missing separator, non-numeric or
    out-of-range parts) decodes to ``None``, which callers treat exactly like
    "no cursor": the first page.
    """
    if not cursor:
        return None

    try:
        decoded = base64.b64decode(cursor.encode("ascii"), validate=True).decode("utf-8")
        timestamp, post_id = decoded.split("_")
        millis, last_id = int(timestamp), int(post_id)
        if millis < 0 or last_id < 0:
            return None
        return Cursor(created_at=EPOCH + timedelta(milliseconds=millis), id=last_id)
    except (ValueError, UnicodeError, OverflowError, binascii.Error):
        return None


def apply_cursor_filter(stmt, model, cursor: Optional[Cursor]):
    """Restrict a select to rows strictly after the cursor in newest-first order"""
    if cursor is None:
        return stmt
    return stmt.where(
        or_(
            model.created_at < cursor.created_at,
            and_(model.created_at == cursor.created_at, model.id < cursor.id),
        )
    )


def newest_first(model):
    return (model.created_at.desc(), model.id.desc())
