"""
Reproduction bounty market.

Components:
    - models: Bounty, Audit, Attempt and the embedded BountyTask proposal
    - errors: rejected-operation taxonomy with stable codes
    - service: BountyMarket, the seed/claim/submit/audit state machine
"""

from .errors import (
    BountyNotFoundError,
    InvalidRequestError,
    MarketError,
    StateConflictError,
)
from .models import (
    REPRODUCTION_TASK_KIND,
    Attempt,
    AttemptResult,
    Audit,
    AuditDecision,
    AuditStatus,
    Bounty,
    BountyStatus,
    BountyTask,
    Evidence,
    MarketDocument,
)
from .service import BountyMarket, audit_reward, bounty_id_for, reproduction_tasks

__all__ = [
    "REPRODUCTION_TASK_KIND",
    "Attempt",
    "AttemptResult",
    "Audit",
    "AuditDecision",
    "AuditStatus",
    "Bounty",
    "BountyMarket",
    "BountyNotFoundError",
    "BountyStatus",
    "BountyTask",
    "Evidence",
    "InvalidRequestError",
    "MarketDocument",
    "MarketError",
    "StateConflictError",
    "audit_reward",
    "bounty_id_for",
    "reproduction_tasks",
]
