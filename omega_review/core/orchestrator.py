"""
Core orchestration for Omega Review.

The Orchestrator is built once per process and passed to every handler. It
owns one instance of each component:

- ArtifactStore: minted review artifacts
- BountyMarket: the bounty table
- JobQueue: the reproduction job worker

Components never share mutable state; they reference each other by hash or
id only.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

import structlog

from ..artifacts.models import DEFAULT_PROTOCOL, Artifact
from ..artifacts.store import ArtifactStore
from ..config import Settings, get_settings
from ..jobs.models import JobType
from ..jobs.queue import JobQueue
from ..jobs.runner import get_runner
from ..market.models import BountyTask
from ..market.service import BountyMarket
from ..primitives import utc_now

logger = structlog.get_logger()


class Orchestrator:
    """Wires the artifact store, bounty market and job queue together."""

    def __init__(self, artifacts: ArtifactStore, market: BountyMarket, queue: JobQueue):
        self.artifacts = artifacts
        self.market = market
        self.queue = queue

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Orchestrator":
        """Build an orchestrator backed by the configured paths."""
        settings = settings or get_settings()
        runner = get_runner(settings.runner, delay_scale=settings.runner_delay_scale)
        return cls(
            artifacts=ArtifactStore(settings.artifact_path, scan_limit=settings.artifact_scan_limit),
            market=BountyMarket(settings.market_path),
            queue=JobQueue(runner, default_sandbox=settings.queue_mode),
        )

    @property
    def is_running(self) -> bool:
        return self.queue.is_running

    async def start(self) -> None:
        """Start the job worker."""
        await self.queue.start()
        logger.info("orchestrator_started")

    async def stop(self) -> None:
        """Stop the job worker and wait for outstanding disk writes."""
        await self.queue.stop()
        self.flush()
        logger.info("orchestrator_stopped")

    def flush(self, timeout: Optional[float] = None) -> bool:
        artifacts_done = self.artifacts.flush(timeout)
        market_done = self.market.flush(timeout)
        return artifacts_done and market_done

    def close(self) -> None:
        self.artifacts.close()
        self.market.close()

    def publish(
        self,
        payload: Dict[str, Any],
        enqueue_reproductions: bool = False,
        protocol: str = DEFAULT_PROTOCOL,
    ) -> Artifact:
        """Mint, store and seed bounties for a generated review payload.

        With ``enqueue_reproductions`` each reproduction task gets a queued
        job and the task records its ``queueJobId`` before minting. The
        caller's payload is never mutated.
        """
        if enqueue_reproductions:
            payload = self._enqueue_reproductions(payload)

        artifact = self.artifacts.mint(payload, protocol=protocol)
        self.artifacts.put(artifact)
        created = self.market.seed_from_artifact(artifact)
        logger.info(
            "review_published",
            hash=artifact.hash,
            artifact_id=artifact.id,
            bounties_created=len(created),
        )
        return artifact

    def _enqueue_reproductions(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        payload = copy.deepcopy(payload)
        paper = payload.get("paper") if isinstance(payload.get("paper"), dict) else {}
        tasks = payload.get("tasks")
        if not isinstance(tasks, list):
            return payload

        for raw in tasks:
            if not isinstance(raw, dict):
                continue
            try:
                task = BountyTask.model_validate(raw)
            except ValueError:
                continue
            if not task.is_reproduction:
                continue

            job = self.queue.enqueue(
                JobType.REPRODUCTION_TICKET,
                {
                    "paperId": paper.get("id"),
                    "bountyId": task.id,
                    "claim": task.claim,
                    "evidenceIds": task.evidence_ids or [],
                },
            )
            raw["queueJobId"] = job.id
            raw["status"] = "queued"
        return payload

    def get_status(self) -> Dict[str, Any]:
        """Get the current status of all components."""
        bounties: Dict[str, int] = {}
        for bounty in self.market.list():
            bounties[bounty.status.value] = bounties.get(bounty.status.value, 0) + 1
        return {
            "is_running": self.is_running,
            "artifacts": len(self.artifacts.list()),
            "bounties": bounties,
            "queue": self.queue.get_status(),
            "timestamp": utc_now().isoformat(),
        }
