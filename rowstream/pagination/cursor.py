"""
Opaque keyset cursor tokens.

A token is URL-safe base64 of a small JSON object naming the table and the
(created_at, id) of the last row on the previous page. Tokens are not stored
anywhere; anything that does not decode cleanly is treated as "no cursor".
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class PageCursor:
    table_id: str
    created_at: datetime
    id: str

    def encode(self) -> str:
        payload = {"t": self.table_id, "c": self.created_at.isoformat(), "i": self.id}
        raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: Optional[str]) -> Optional[PageCursor]:
    """Decode a token, returning None for empty or malformed input."""
    if not token:
        return None
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        created_at = datetime.fromisoformat(payload["c"])
        table_id, row_id = payload["t"], payload["i"]
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError):
        return None
    if not isinstance(table_id, str) or not isinstance(row_id, str):
        return None
    if created_at.tzinfo is None:
        return None
    return PageCursor(table_id=table_id, created_at=created_at, id=row_id)


__all__ = ["PageCursor", "decode_cursor"]
