"""
Request policies applied by the HTTP layer.
"""

from .rate_limit import RateLimitDecision, RateLimiter, client_id

__all__ = ["RateLimitDecision", "RateLimiter", "client_id"]
