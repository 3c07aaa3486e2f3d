"""
Opaque pagination tokens.

A token is the URL-safe base64 of the store's LastEvaluatedKey serialized as
compact JSON. Callers only ever pass back what they received.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Mapping, Optional

from restaurant_tracker.errors import ValidationError
from restaurant_tracker.store import key_attributes


def encode_cursor(key: Optional[Mapping[str, str]]) -> Optional[str]:
    if not key:
        return None
    raw = json.dumps(dict(key), separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(
    token: str,
    *,
    index_name: Optional[str] = None,
    expected: Mapping[str, str] | None = None,
) -> dict:
    """
    Decode a token for a query against `index_name`.

    `expected` pins attributes (e.g. the caller's partition) that the decoded
    key must carry, so a token minted for another user or another index is
    rejected rather than silently resumed.
    """
    value = (token or "").strip()
    if not value:
        raise ValidationError("Invalid pagination token")
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        parsed = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        raise ValidationError("Invalid pagination token") from None

    if not isinstance(parsed, dict):
        raise ValidationError("Invalid pagination token")
    if set(parsed) != set(key_attributes(index_name)):
        raise ValidationError("Pagination token does not match this query")
    if not all(isinstance(v, str) for v in parsed.values()):
        raise ValidationError("Invalid pagination token")
    for name, required in (expected or {}).items():
        if parsed.get(name) != required:
            raise ValidationError("Pagination token does not match this query")
    return parsed
