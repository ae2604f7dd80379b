"""
Content-addressed review artifacts.

Components:
    - canonical: deterministic serialization and digests
    - models: the immutable Artifact record
    - store: in-memory index with a flat-file mirror
"""

from .canonical import canonical_bytes, hash_payload, sha256_hex, stable_stringify
from .models import ARTIFACT_VERSION, DEFAULT_PROTOCOL, Artifact, artifact_digest
from .store import ArtifactStore, is_valid_hash

__all__ = [
    "ARTIFACT_VERSION",
    "DEFAULT_PROTOCOL",
    "Artifact",
    "ArtifactStore",
    "artifact_digest",
    "canonical_bytes",
    "hash_payload",
    "is_valid_hash",
    "sha256_hex",
    "stable_stringify",
]
