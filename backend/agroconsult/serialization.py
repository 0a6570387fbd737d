# Overview: Tolerant JSON helpers for columns that store opaque JSON text.

from __future__ import annotations

import json
from typing import Any, TypeVar

T = TypeVar("T")


def parse_or_default(raw: Any, default: T, *, expected_type: type | tuple[type, ...] | None = None) -> Any:
    """
    Decode a JSON text column, falling back to ``default`` instead of raising.

    - None / "" -> default
    - malformed JSON -> default
    - decoded value of the wrong type (when expected_type is given) -> default

    Already-decoded values (dict/list) are accepted as-is so callers can pass
    through values that some drivers hand back pre-parsed.
    """
    if raw is None:
        return default
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return default
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return default
    else:
        value = raw

    if expected_type is not None and not isinstance(value, expected_type):
        return default
    return value


def dumps_or_none(value: Any) -> str | None:
    """Encode a payload for storage; None stays NULL (not "null" and not "{}")."""
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)
