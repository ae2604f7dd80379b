"""
Content-addressed artifact store.

Artifacts are indexed in memory by hash and mirrored to disk as one JSON
file per hash:

    {artifact_dir}/
    ├── 3f2a...e1.json
    └── 9b04...7c.json

Disk is a best-effort mirror. Writes happen on a background writer thread
and never fail the caller; an artifact whose write fails stays servable from
memory until the process exits. The directory is scanned lazily, once, on the
first read that misses memory.
"""
from __future__ import annotations

import concurrent.futures
import copy
import json
import os
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import structlog
from pydantic import ValidationError

from ..primitives import make_id, utc_now
from .canonical import strip_hash_prefix
from .models import DEFAULT_PROTOCOL, Artifact, artifact_digest

logger = structlog.get_logger()

DEFAULT_SCAN_LIMIT = 200

_HASH_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$")


def is_valid_hash(value: str) -> bool:
    return bool(_HASH_PATTERN.match(value or ""))


class ArtifactStore:
    """Mints, indexes and persists review artifacts.

    Usage:
        store = ArtifactStore(Path(".omega/artifacts"))
        artifact = store.mint(payload)
        store.put(artifact)
        store.get(artifact.hash)
    """

    def __init__(self, root: Path, scan_limit: int = DEFAULT_SCAN_LIMIT):
        self.root = Path(root)
        self.scan_limit = scan_limit
        self._by_hash: Dict[str, Artifact] = {}
        self._disk_scanned = False
        self._lock = threading.RLock()
        self._writer = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="artifact-writer"
        )
        self._pending: Set[concurrent.futures.Future] = set()

    # -- minting -----------------------------------------------------------

    def mint(
        self,
        payload: Dict[str, Any],
        protocol: str = DEFAULT_PROTOCOL,
        created_at: Optional[datetime] = None,
    ) -> Artifact:
        """Build an immutable artifact for ``payload``.

        The hash depends only on content; ``id`` and ``created_at`` differ
        between calls.
        """
        frozen_payload = copy.deepcopy(payload)
        digest = artifact_digest(frozen_payload, protocol)
        artifact = Artifact(
            id=f"art-{strip_hash_prefix(digest)[:12]}-{make_id('r')}",
            protocol=protocol,
            created_at=created_at or utc_now(),
            hash=digest,
            payload=frozen_payload,
        )
        logger.info("artifact_minted", hash=artifact.hash, artifact_id=artifact.id)
        return artifact

    # -- writes ------------------------------------------------------------

    def put(self, artifact: Artifact) -> None:
        """Index ``artifact`` and schedule its disk write (fire-and-forget)."""
        with self._lock:
            self._by_hash[artifact.hash] = artifact
            future = self._writer.submit(self._persist, artifact)
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _file_for(self, digest: str) -> Path:
        return self.root / f"{strip_hash_prefix(digest)}.json"

    def _persist(self, artifact: Artifact) -> None:
        target = self._file_for(artifact.hash)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(f".{target.name}.{os.getpid()}.tmp")
            tmp.write_text(json.dumps(artifact.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp, target)
        except Exception as e:
            logger.warning(
                "artifact_persist_failed", hash=artifact.hash, path=str(target), error=str(e)
            )

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled disk writes. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self.flush()
        self._writer.shutdown(wait=True)

    # -- reads -------------------------------------------------------------

    def get(self, digest: str) -> Optional[Artifact]:
        """Return the artifact for ``digest`` or None."""
        if not is_valid_hash(digest):
            return None
        with self._lock:
            cached = self._by_hash.get(digest)
        if cached is not None:
            return cached
        self._scan_disk_once()
        with self._lock:
            cached = self._by_hash.get(digest)
        if cached is not None:
            return cached
        return self._load_from_disk(digest)

    def list(self) -> List[Artifact]:
        """All known artifacts, newest first."""
        self._scan_disk_once()
        with self._lock:
            artifacts = list(self._by_hash.values())
        return sorted(artifacts, key=lambda a: a.created_at, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_hash)

    def _read_file(self, path: Path) -> Optional[Artifact]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            artifact = Artifact.model_validate(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("artifact_file_unreadable", path=str(path), error=str(e))
            return None

        if path.name != f"{strip_hash_prefix(artifact.hash)}.json" or not artifact.verify():
            logger.warning("artifact_integrity_mismatch", path=str(path), hash=artifact.hash)
            return None
        return artifact

    def _load_from_disk(self, digest: str) -> Optional[Artifact]:
        path = self._file_for(digest)
        if not path.is_file():
            return None
        artifact = self._read_file(path)
        if artifact is None or artifact.hash != digest:
            return None
        with self._lock:
            return self._by_hash.setdefault(digest, artifact)

    def _scan_disk_once(self) -> None:
        with self._lock:
            if self._disk_scanned:
                return
            self._disk_scanned = True

        try:
            names = sorted(os.listdir(self.root))
        except OSError:
            return

        json_files = [n for n in names if n.lower().endswith(".json")][: self.scan_limit]
        loaded = 0
        for name in json_files:
            artifact = self._read_file(self.root / name)
            if artifact is None:
                continue
            with self._lock:
                self._by_hash.setdefault(artifact.hash, artifact)
            loaded += 1

        logger.info("artifact_disk_scan", root=str(self.root), files=len(json_files), loaded=loaded)
