"""
Common primitives shared by the stores.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def make_id(prefix: str) -> str:
    """Generate a random identifier such as ``job-6f1c...``."""
    return f"{prefix}-{uuid.uuid4()}"
