"""
Review artifact schema.

An artifact is an immutable, content-hashed record of a generated review
payload. A changed payload is a new artifact with a new hash.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field, constr
from pydantic.alias_generators import to_camel

from .canonical import HASH_ALG, hash_payload

ARTIFACT_VERSION = 1
DEFAULT_PROTOCOL = "omega-review-protocol-v1"


def artifact_digest(payload: Dict[str, Any], protocol: str = DEFAULT_PROTOCOL) -> str:
    """Digest of the hash preimage ``{version, protocol, payload}``."""
    return hash_payload(
        {"version": ARTIFACT_VERSION, "protocol": protocol, "payload": payload}
    )


class Artifact(BaseModel):
    """A minted review artifact.

    Invariants:
    - ``hash`` is a pure function of ``{version, protocol, payload}``.
    - ``id`` is for humans only and is never used for lookup.
    - ``created_at`` is stamped once at mint time.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    version: Literal[1] = ARTIFACT_VERSION
    protocol: constr(min_length=1, max_length=128) = DEFAULT_PROTOCOL
    id: constr(min_length=1, max_length=256) = Field(
        ..., description="Human-scannable identifier (hash prefix + random suffix)"
    )
    created_at: datetime = Field(..., description="Mint timestamp (UTC)")
    hash_alg: Literal["sha256"] = HASH_ALG
    hash: constr(min_length=1, max_length=128) = Field(
        ..., description="Algorithm-tagged content digest"
    )
    payload: Dict[str, Any] = Field(..., description="Opaque review payload")

    def verify(self) -> bool:
        """Return True when the recorded hash matches the content."""
        return artifact_digest(self.payload, self.protocol) == self.hash

    @property
    def paper(self) -> Dict[str, Any]:
        paper = self.payload.get("paper")
        return paper if isinstance(paper, dict) else {}

    @property
    def tasks(self) -> list:
        tasks = self.payload.get("tasks")
        return tasks if isinstance(tasks, list) else []

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
