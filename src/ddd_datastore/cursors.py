"""Opaque offset cursors for backends without native continuation tokens."""

from __future__ import annotations

import base64
import binascii
import json

from .exceptions import QueryError


def encode_offset_cursor(offset: int) -> str:
    raw = json.dumps({"o": offset}, separators=(",", ":")).encode("ascii")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_offset_cursor(cursor: str | None) -> int:
    """Return the offset a cursor points at; ``None`` is the start."""
    if cursor is None:
        return 0
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        offset = data["o"]
    except (binascii.Error, ValueError, KeyError, TypeError) as exc:
        raise QueryError(f"Malformed continuation cursor: {cursor!r}") from exc
    if not isinstance(offset, int) or isinstance(offset, bool) or offset < 0:
        raise QueryError(f"Malformed continuation cursor: {cursor!r}")
    return offset
