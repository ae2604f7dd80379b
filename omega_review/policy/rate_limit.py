"""
Fixed-window rate limiting for the HTTP layer.

Each (key, client) pair gets a counter that resets when its window expires.
The core stores never consult this; it gates how often a caller may mint,
claim or submit.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel

LOCAL_CLIENT = "local"


def client_id(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """
    Identify the caller for rate limiting.

    Order: first X-Forwarded-For entry, X-Real-IP, socket peer, "local".
    """
    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return peer or LOCAL_CLIENT


class RateLimitDecision(BaseModel):
    """Outcome of one rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    client: str


@dataclass
class _Bucket:
    reset_at: float
    count: int = 0


class RateLimiter:
    """In-memory fixed-window counters."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._buckets: Dict[Tuple[str, str], _Bucket] = {}
        self._lock = threading.Lock()

    def check(self, key: str, client: str, limit: int, window_seconds: float) -> RateLimitDecision:
        """Count one request and report whether it is within the limit."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get((key, client))
            if bucket is None or bucket.reset_at <= now:
                bucket = _Bucket(reset_at=now + window_seconds)
                self._buckets[(key, client)] = bucket
            bucket.count += 1
            count, reset_at = bucket.count, bucket.reset_at

        return RateLimitDecision(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=datetime.fromtimestamp(reset_at, tz=timezone.utc),
            client=client,
        )

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
