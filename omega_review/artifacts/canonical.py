"""
Canonical serialization and content digests.

The digest of a value must be a pure function of its content:

- object keys are sorted (code point order) before serialization
- arrays keep their order
- non-finite floats (NaN, +/-Infinity) serialize as ``null``
- integral floats serialize like integers (``1.0`` -> ``1``)
- other floats use Python's shortest repr (``1.5e-05``, not ``0.000015``)
- output is compact (no insignificant whitespace) UTF-8
"""

from __future__ import annotations

import hashlib
import json
import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict

HASH_ALG = "sha256"
HASH_PREFIX = f"{HASH_ALG}:"

# Beyond this magnitude integral floats keep exponent notation.
_MAX_INTEGRAL_FLOAT = 1e21


def _coerce(value: Any) -> Any:
    """Coerce a JSON-like Python value into strict JSON types."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return _coerce(value.value)
    if isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer() and abs(value) < _MAX_INTEGRAL_FLOAT:
            return int(value)
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_coerce(item) for item in value]
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for key, item in value.items():
            out[str(key)] = _coerce(item)
        return out
    raise TypeError(f"Value of type {type(value).__name__} is not canonically serializable")


def stable_stringify(value: Any) -> str:
    """Serialize ``value`` to its canonical JSON text."""
    return json.dumps(
        _coerce(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonical_bytes(value: Any) -> bytes:
    return stable_stringify(value).encode("utf-8")


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(value: Any) -> str:
    """Return the algorithm-tagged digest of ``value``, e.g. ``sha256:<hex>``."""
    return f"{HASH_PREFIX}{sha256_hex(stable_stringify(value))}"


def strip_hash_prefix(digest: str) -> str:
    if digest.startswith(HASH_PREFIX):
        return digest[len(HASH_PREFIX):]
    return digest
