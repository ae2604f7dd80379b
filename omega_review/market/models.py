"""
Bounty market schemas.

A Bounty is materialized once per (artifact, reproduction task) and then
moves through its status machine in place:

    open -> claimed -> pass_pending_audit -> passed
      ^        |               |
      +--fail--+               |
      +-------audit reject-----+

Records are frozen; every transition replaces the stored record with an
updated copy.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AllowInfNan,
    BaseModel,
    ConfigDict,
    Field,
    Strict,
    StrictInt,
    ValidationError,
    constr,
    field_validator,
)
from pydantic.alias_generators import to_camel

MARKET_VERSION = 1
REPRODUCTION_TASK_KIND = "reproduction_ticket"

# JSON number: no booleans, no numeric strings, no NaN or infinities
Amount = Union[StrictInt, Annotated[float, Strict(), AllowInfNan(False)]]


class BountyStatus(str, Enum):
    """Bounty lifecycle states."""

    OPEN = "open"
    CLAIMED = "claimed"
    PASS_PENDING_AUDIT = "pass_pending_audit"
    PASSED = "passed"


class AuditStatus(str, Enum):
    """Audit lifecycle states."""

    PENDING = "pending"
    CLAIMED = "claimed"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class AttemptResult(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class AuditDecision(str, Enum):
    CONFIRM = "confirm"
    REJECT = "reject"


class _MarketModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Evidence(_MarketModel):
    """Free-form evidence supplied with a submission or an audit decision."""

    artifact_url: Optional[str] = None
    artifact_hash: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def clean(
        cls,
        artifact_url: Optional[str] = None,
        artifact_hash: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> "Evidence":
        """Build evidence with blank values dropped."""
        return cls(
            artifact_url=(artifact_url or "").strip() or None,
            artifact_hash=(artifact_hash or "").strip() or None,
            notes=(notes or "").strip() or None,
        )


class Attempt(_MarketModel):
    """The most recent submission outcome for a bounty."""

    by: constr(min_length=1)
    at: datetime
    result: AttemptResult
    artifact_url: Optional[str] = None
    artifact_hash: Optional[str] = None
    notes: Optional[str] = None


class Audit(_MarketModel):
    """Independent verification gating a bounty's settlement."""

    version: Literal[1] = MARKET_VERSION
    status: AuditStatus = AuditStatus.PENDING
    reward_elf: Amount = Field(..., alias="rewardELF")
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    decision: Optional[AuditDecision] = None
    artifact_url: Optional[str] = None
    artifact_hash: Optional[str] = None
    notes: Optional[str] = None


class Bounty(_MarketModel):
    """A claimable reproduction task derived from an artifact."""

    version: Literal[1] = MARKET_VERSION
    id: constr(min_length=1, max_length=256)
    created_at: datetime
    updated_at: datetime

    # Descriptive, copied at seed time
    artifact_hash: constr(min_length=1)
    paper_id: constr(min_length=1)
    paper_title: str = ""
    paper_doi: Optional[str] = None
    claim: constr(min_length=1)
    detail: str = "Reproduction bounty"
    alignment_status: Optional[str] = None
    controversy_score: Optional[Amount] = None
    evidence_ids: Optional[List[str]] = None

    # Economics, fixed at seed time
    reward_elf: Amount = Field(..., alias="rewardELF")
    stake_elf: Amount = Field(..., alias="stakeELF")

    # State machine
    status: BountyStatus = BountyStatus.OPEN
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    last_attempt: Optional[Attempt] = None
    audit: Optional[Audit] = None


class MarketDocument(_MarketModel):
    """On-disk shape of the bounty table."""

    version: Literal[1] = MARKET_VERSION
    updated_at: datetime
    bounties: List[Dict[str, Any]] = Field(default_factory=list)


class BountyTask(BaseModel):
    """Reproduction task proposal embedded in an artifact payload."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")

    id: str
    kind: Optional[str] = None
    claim: str
    detail: Optional[str] = None
    reward_elf: Amount = Field(..., alias="rewardELF")
    stake_elf: Amount = Field(..., alias="stakeELF")
    evidence_ids: Optional[List[str]] = None
    controversy_score: Optional[Amount] = None
    alignment_status: Optional[str] = None

    @field_validator(
        "detail", "evidence_ids", "controversy_score", "alignment_status", mode="wrap"
    )
    @classmethod
    def _drop_malformed(cls, value: Any, handler: Any) -> Any:
        """Descriptive fields of the wrong type are dropped, not fatal."""
        try:
            return handler(value)
        except ValidationError:
            return None

    @property
    def is_reproduction(self) -> bool:
        return self.kind in (None, REPRODUCTION_TASK_KIND)
