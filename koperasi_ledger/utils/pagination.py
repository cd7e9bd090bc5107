"""Opaque forward-only cursors over descending integer ids"""

import base64
import binascii
from typing import Optional

from koperasi_ledger.domain.exceptions import PreconditionError

_PREFIX = "id:"


def encode_cursor(last_id: Optional[int]) -> Optional[str]:
    if last_id is None:
        return None
    raw = f"{_PREFIX}{last_id}".encode("ascii")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: Optional[str]) -> Optional[int]:
    """Decode a cursor produced by encode_cursor; None means first page"""
    if not cursor:
        return None
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("ascii")
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise PreconditionError("invalid cursor") from e
    if not raw.startswith(_PREFIX) or not raw[len(_PREFIX):].isdigit():
        raise PreconditionError("invalid cursor")
    return int(raw[len(_PREFIX):])
