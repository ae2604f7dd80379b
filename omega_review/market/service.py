"""
Bounty market service.

Owns the bounty table and its backing JSON document
``{version, updatedAt, bounties: [...]}``. Every mutating operation is a
single read-check-write under the market lock, so two concurrent claims on
the same bounty can never both succeed within one process. Successful
transitions bump ``updatedAt`` and schedule a full-table write; the write is
best-effort and never fails the transition.

The backing file has exactly one writer: the process that owns this object.
"""
from __future__ import annotations

import concurrent.futures
import json
import math
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import structlog
from pydantic import ValidationError

from ..artifacts.canonical import strip_hash_prefix
from ..artifacts.models import Artifact
from ..primitives import utc_now
from . import errors
from .errors import BountyNotFoundError, InvalidRequestError, StateConflictError
from .models import (
    MARKET_VERSION,
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

logger = structlog.get_logger()

# Audit reward: a fraction of the bounty reward, never below the floor
AUDIT_REWARD_FRACTION = 0.35
AUDIT_REWARD_MIN = 10

DEFAULT_DETAIL = "Reproduction bounty"


def audit_reward(reward_elf: Union[int, float]) -> int:
    """Reward paid to the auditor of a passing attempt (half-up rounding)."""
    return max(AUDIT_REWARD_MIN, int(math.floor(reward_elf * AUDIT_REWARD_FRACTION + 0.5)))


def bounty_id_for(artifact_hash: str, task_id: str) -> str:
    """Deterministic bounty id for an (artifact, task) pair."""
    return f"bty-{strip_hash_prefix(artifact_hash)[:12]}-{task_id}"


def reproduction_tasks(payload: Dict[str, Any]) -> List[BountyTask]:
    """Valid reproduction tasks embedded in an artifact payload.

    Tasks of another kind, or missing an id, claim or numeric reward/stake,
    are skipped.
    """
    raw_tasks = payload.get("tasks")
    if not isinstance(raw_tasks, list):
        return []

    tasks: List[BountyTask] = []
    for raw in raw_tasks:
        if not isinstance(raw, dict):
            continue
        try:
            task = BountyTask.model_validate(raw)
        except ValidationError:
            continue
        if not task.is_reproduction:
            continue
        if not task.id.strip() or not task.claim.strip():
            continue
        tasks.append(task)
    return tasks


def _coerce_result(result: Union[str, AttemptResult]) -> AttemptResult:
    try:
        return AttemptResult(result)
    except ValueError:
        raise InvalidRequestError("Invalid result (must be pass|fail).")


def _coerce_decision(decision: Union[str, AuditDecision]) -> AuditDecision:
    try:
        return AuditDecision(decision)
    except ValueError:
        raise InvalidRequestError("Invalid decision (must be confirm|reject).")


def _text(value: Any) -> Optional[str]:
    """Stripped string value, or None for blanks and non-strings."""
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _require_handle(handle: Optional[str]) -> str:
    handle = (handle or "").strip()
    if not handle:
        raise InvalidRequestError("Missing handle.")
    return handle


class BountyMarket:
    """Seeds bounties from artifacts and runs the claim -> attempt -> audit
    lifecycle.

    Usage:
        market = BountyMarket(Path(".omega/market.json"))
        market.seed_from_artifact(artifact)
        market.claim(bounty_id, "alice")
        market.submit(bounty_id, "alice", "pass", Evidence.clean(notes="ok"))
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._by_id: Dict[str, Bounty] = {}
        self._loaded = False
        self._lock = threading.RLock()
        self._writer = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="market-writer"
        )
        self._pending: Set[concurrent.futures.Future] = set()

    # -- persistence -------------------------------------------------------

    def _load_once(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._loaded = True

            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return
            except (OSError, ValueError) as e:
                logger.warning("market_file_unreadable", path=str(self.path), error=str(e))
                return

            if (
                not isinstance(raw, dict)
                or raw.get("version") != MARKET_VERSION
                or not isinstance(raw.get("bounties"), list)
            ):
                logger.warning("market_file_unrecognized", path=str(self.path))
                return

            for entry in raw["bounties"]:
                if not isinstance(entry, dict) or entry.get("version") != MARKET_VERSION:
                    continue
                try:
                    bounty = Bounty.model_validate(entry)
                except ValidationError as e:
                    logger.warning("market_bounty_skipped", bounty_id=entry.get("id"), error=str(e))
                    continue
                self._by_id[bounty.id] = bounty

            logger.info("market_loaded", path=str(self.path), bounties=len(self._by_id))

    def _persist(self) -> None:
        """Snapshot the table and schedule its write. Caller holds the lock."""
        document = MarketDocument(
            updated_at=utc_now(),
            bounties=[b.to_dict() for b in self._by_id.values()],
        )
        text = json.dumps(document.to_dict(), indent=2)
        future = self._writer.submit(self._write, text)
        self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _write(self, text: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, self.path)
        except Exception as e:
            logger.warning("market_persist_failed", path=str(self.path), error=str(e))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled table writes. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self.flush()
        self._writer.shutdown(wait=True)

    def _commit(self, bounty: Bounty, event: str, **fields: Any) -> Bounty:
        """Store a transitioned bounty and persist. Caller holds the lock."""
        self._by_id[bounty.id] = bounty
        self._persist()
        logger.info(event, bounty_id=bounty.id, status=bounty.status.value, **fields)
        return bounty

    def _require_bounty(self, bounty_id: Optional[str]) -> Bounty:
        bounty_id = (bounty_id or "").strip()
        if not bounty_id:
            raise InvalidRequestError("Missing id.")
        bounty = self._by_id.get(bounty_id)
        if bounty is None:
            raise BountyNotFoundError(bounty_id)
        return bounty

    # -- seeding -----------------------------------------------------------

    def seed_from_artifact(self, artifact: Artifact) -> List[Bounty]:
        """Materialize one open bounty per reproduction task in ``artifact``.

        Idempotent: tasks already materialized are left untouched.

        Returns:
            The bounties created by this call
        """
        self._load_once()

        paper = artifact.paper
        paper_id = str(paper.get("id") or "").strip()
        if not paper_id:
            logger.warning("market_seed_skipped", hash=artifact.hash, reason="missing paper id")
            return []

        created: List[Bounty] = []
        with self._lock:
            for task in reproduction_tasks(artifact.payload):
                bounty_id = bounty_id_for(artifact.hash, task.id.strip())
                if bounty_id in self._by_id:
                    continue

                now = utc_now()
                try:
                    bounty = Bounty(
                    id=bounty_id,
                    created_at=now,
                    updated_at=now,
                    artifact_hash=artifact.hash,
                    paper_id=paper_id,
                    paper_title=_text(paper.get("title")) or "",
                    paper_doi=_text(paper.get("doi")),
                    claim=task.claim.strip(),
                    detail=(task.detail or "").strip() or DEFAULT_DETAIL,
                    alignment_status=task.alignment_status,
                    controversy_score=task.controversy_score,
                    evidence_ids=task.evidence_ids,
                    reward_elf=task.reward_elf,
                    stake_elf=task.stake_elf,
                    status=BountyStatus.OPEN,
                    )
                except ValidationError as e:
                    logger.warning(
                        "market_task_skipped", hash=artifact.hash, task_id=task.id, error=str(e)
                    )
                    continue
                self._by_id[bounty_id] = bounty
                created.append(bounty)

            if created:
                self._persist()

        if created:
            logger.info(
                "market_seeded", hash=artifact.hash, created=[b.id for b in created]
            )
        return created

    # -- reads -------------------------------------------------------------

    def list(self, status: Optional[Union[str, BountyStatus]] = None) -> List[Bounty]:
        """All bounties newest first, optionally filtered by status."""
        self._load_once()
        with self._lock:
            bounties = list(self._by_id.values())
        if status is not None:
            wanted = BountyStatus(status)
            bounties = [b for b in bounties if b.status == wanted]
        return sorted(bounties, key=lambda b: b.created_at, reverse=True)

    def get(self, bounty_id: str) -> Optional[Bounty]:
        self._load_once()
        with self._lock:
            return self._by_id.get((bounty_id or "").strip())

    # -- lifecycle ---------------------------------------------------------

    def claim(self, bounty_id: str, handle: str) -> Bounty:
        """Take the single active claim on an open bounty."""
        self._load_once()
        handle = _require_handle(handle)
        with self._lock:
            bounty = self._require_bounty(bounty_id)
            if bounty.status != BountyStatus.OPEN:
                raise StateConflictError("Bounty is not open.", errors.BOUNTY_NOT_OPEN)

            now = utc_now()
            claimed = bounty.model_copy(
                update={
                    "updated_at": now,
                    "status": BountyStatus.CLAIMED,
                    "claimed_by": handle,
                    "claimed_at": now,
                }
            )
            return self._commit(claimed, "bounty_claimed", handle=handle)

    def submit(
        self,
        bounty_id: str,
        handle: str,
        result: Union[str, AttemptResult],
        evidence: Optional[Evidence] = None,
    ) -> Bounty:
        """Record the claimant's reproduction attempt.

        A failed attempt reopens the bounty; a passing one sends it to audit.
        """
        self._load_once()
        handle = _require_handle(handle)
        outcome = _coerce_result(result)
        evidence = evidence or Evidence()

        with self._lock:
            bounty = self._require_bounty(bounty_id)
            if bounty.status != BountyStatus.CLAIMED:
                raise StateConflictError("Bounty is not claimed.", errors.BOUNTY_NOT_CLAIMED)
            if bounty.claimed_by != handle:
                raise StateConflictError(
                    "Bounty is claimed by another validator.", errors.CLAIMED_BY_ANOTHER
                )

            now = utc_now()
            attempt = Attempt(
                by=handle,
                at=now,
                result=outcome,
                artifact_url=evidence.artifact_url,
                artifact_hash=evidence.artifact_hash,
                notes=evidence.notes,
            )

            if outcome == AttemptResult.FAIL:
                reopened = bounty.model_copy(
                    update={
                        "updated_at": now,
                        "status": BountyStatus.OPEN,
                        "last_attempt": attempt,
                        "claimed_by": None,
                        "claimed_at": None,
                        "audit": None,
                    }
                )
                return self._commit(reopened, "bounty_attempt_failed", handle=handle)

            pending = bounty.model_copy(
                update={
                    "updated_at": now,
                    "status": BountyStatus.PASS_PENDING_AUDIT,
                    "last_attempt": attempt,
                    "audit": Audit(reward_elf=audit_reward(bounty.reward_elf)),
                }
            )
            return self._commit(pending, "bounty_attempt_passed", handle=handle)

    def claim_audit(self, bounty_id: str, handle: str) -> Bounty:
        """Take the audit of a passing attempt. The submitter may not."""
        self._load_once()
        handle = _require_handle(handle)
        with self._lock:
            bounty = self._require_bounty(bounty_id)
            if bounty.status != BountyStatus.PASS_PENDING_AUDIT:
                raise StateConflictError("Bounty is not awaiting audit.", errors.NOT_AWAITING_AUDIT)
            if bounty.claimed_by == handle:
                raise StateConflictError(
                    "Submitter cannot audit their own result.", errors.SELF_AUDIT_NOT_ALLOWED
                )
            if bounty.audit is None or bounty.audit.status != AuditStatus.PENDING:
                raise StateConflictError(
                    "Audit is already claimed/finalized.", errors.AUDIT_NOT_PENDING
                )

            now = utc_now()
            audit = bounty.audit.model_copy(
                update={"status": AuditStatus.CLAIMED, "claimed_by": handle, "claimed_at": now}
            )
            audited = bounty.model_copy(update={"updated_at": now, "audit": audit})
            return self._commit(audited, "bounty_audit_claimed", handle=handle)

    def submit_audit(
        self,
        bounty_id: str,
        handle: str,
        decision: Union[str, AuditDecision],
        evidence: Optional[Evidence] = None,
    ) -> Bounty:
        """Record the auditor's decision.

        ``confirm`` settles the bounty as passed (terminal); ``reject``
        reopens it and keeps the rejected audit for history.
        """
        self._load_once()
        handle = _require_handle(handle)
        verdict = _coerce_decision(decision)
        evidence = evidence or Evidence()

        with self._lock:
            bounty = self._require_bounty(bounty_id)
            if bounty.status != BountyStatus.PASS_PENDING_AUDIT:
                raise StateConflictError("Bounty is not awaiting audit.", errors.NOT_AWAITING_AUDIT)
            if bounty.audit is None or bounty.audit.status != AuditStatus.CLAIMED:
                raise StateConflictError("Audit must be claimed first.", errors.AUDIT_NOT_CLAIMED)
            if bounty.audit.claimed_by != handle:
                raise StateConflictError(
                    "Audit is claimed by another validator.", errors.AUDIT_CLAIMED_BY_ANOTHER
                )

            now = utc_now()
            audit = bounty.audit.model_copy(
                update={
                    "status": (
                        AuditStatus.CONFIRMED
                        if verdict == AuditDecision.CONFIRM
                        else AuditStatus.REJECTED
                    ),
                    "decided_at": now,
                    "decision": verdict,
                    "artifact_url": evidence.artifact_url,
                    "artifact_hash": evidence.artifact_hash,
                    "notes": evidence.notes,
                }
            )

            if verdict == AuditDecision.CONFIRM:
                settled = bounty.model_copy(
                    update={"updated_at": now, "status": BountyStatus.PASSED, "audit": audit}
                )
                return self._commit(settled, "bounty_audit_confirmed", handle=handle)

            reopened = bounty.model_copy(
                update={
                    "updated_at": now,
                    "status": BountyStatus.OPEN,
                    "claimed_by": None,
                    "claimed_at": None,
                    "audit": audit,
                }
            )
            return self._commit(reopened, "bounty_audit_rejected", handle=handle)
