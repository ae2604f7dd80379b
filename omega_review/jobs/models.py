"""
Queue job schema.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..primitives import make_id, utc_now

JOB_VERSION = 1


class JobStatus(str, Enum):
    """Forward-only job states: queued -> running -> succeeded|failed."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobType(str, Enum):
    REPRODUCTION_TICKET = "reproduction_ticket"


class SandboxMode(str, Enum):
    SIMULATED = "simulated"
    DOCKER = "docker"


class QueueJob(BaseModel):
    """A unit of work for the serial job worker."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    version: Literal[1] = JOB_VERSION
    id: str = Field(default_factory=lambda: make_id("job"))
    type: JobType
    sandbox: SandboxMode = SandboxMode.SIMULATED
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
