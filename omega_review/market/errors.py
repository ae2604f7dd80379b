"""
Rejected bounty market operations.

Every rejection carries a stable code so callers can tell an expected race
("already claimed") from a malformed request or a bug.
"""

from __future__ import annotations

from typing import Any, Dict


class MarketError(Exception):
    """
    Base class for rejected market operations.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable description of the failed precondition
    """

    code = "MARKET_ERROR"

    def __init__(self, message: str, code: str = ""):
        self.code = code or self.code
        self.message = message
        super().__init__(f"{self.code}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {"error": {"code": self.code, "message": self.message}}


class InvalidRequestError(MarketError):
    """Missing or malformed identifiers, handles, results or decisions."""

    code = "INVALID_REQUEST"


class BountyNotFoundError(MarketError):
    """No bounty exists with the requested id."""

    code = "BOUNTY_NOT_FOUND"

    def __init__(self, bounty_id: str):
        self.bounty_id = bounty_id
        super().__init__("Bounty not found.")


class StateConflictError(MarketError):
    """The bounty or its audit is not in the state the operation requires,
    or the caller is not entitled to act on it."""

    code = "STATE_CONFLICT"


# Stable state-conflict codes
BOUNTY_NOT_OPEN = "BOUNTY_NOT_OPEN"
BOUNTY_NOT_CLAIMED = "BOUNTY_NOT_CLAIMED"
CLAIMED_BY_ANOTHER = "CLAIMED_BY_ANOTHER"
NOT_AWAITING_AUDIT = "NOT_AWAITING_AUDIT"
SELF_AUDIT_NOT_ALLOWED = "SELF_AUDIT_NOT_ALLOWED"
AUDIT_NOT_PENDING = "AUDIT_NOT_PENDING"
AUDIT_NOT_CLAIMED = "AUDIT_NOT_CLAIMED"
AUDIT_CLAIMED_BY_ANOTHER = "AUDIT_CLAIMED_BY_ANOTHER"
